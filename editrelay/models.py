"""Core domain models used by the relay."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DEFAULT_EDITOR = "neovim"


@dataclass(frozen=True)
class Activity:
    """One recorded editor activity interval.

    ``id`` and ``created_at`` are assigned by the buffer; an activity built by
    intake carries ``None`` for both until it has been appended.
    """

    started_at: datetime
    ended_at: datetime
    project: str = ""
    git_remote: str = ""
    filename: str = ""
    filetype: str = ""
    lines_added: int = 0
    lines_removed: int = 0
    git_branch: str = ""
    actions_per_minute: float = 0.0
    words_per_minute: float = 0.0
    editor: str = DEFAULT_EDITOR
    machine: str = ""
    client_id: Optional[str] = None
    id: Optional[int] = None
    synced: bool = False
    created_at: Optional[datetime] = None
