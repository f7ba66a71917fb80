"""editrelay - local store-and-forward relay for editor activity events."""

import logging

from .errors import (
    ClientInputFault,
    NoCredential,
    RateLimited,
    RelayError,
    StorageFault,
    SyncInProgress,
    TransientFault,
)
from .forwarder import Forwarder
from .models import Activity
from .ratelimit import SlidingWindowLimiter
from .service import IntakeService

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Activity",
    "Forwarder",
    "IntakeService",
    "SlidingWindowLimiter",
    "RelayError",
    "ClientInputFault",
    "StorageFault",
    "TransientFault",
    "RateLimited",
    "NoCredential",
    "SyncInProgress",
]

__version__ = "0.1.0"
