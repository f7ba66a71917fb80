"""Storage adapters implementing the activity buffer port."""

from .sqlalchemy_buffer import SQLAlchemyActivityBuffer, open_buffer

__all__ = ["SQLAlchemyActivityBuffer", "open_buffer"]
