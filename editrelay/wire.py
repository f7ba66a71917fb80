"""Wire models for the two external interfaces.

Local clients speak snake_case JSON lines over the intake socket; the remote
collector speaks camelCase JSON over HTTP. Both describe an ``Activity`` but they
serve different consumers, so each keeps its own model and field names.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ClientInputFault
from .models import DEFAULT_EDITOR, Activity

PRIVATE_LITERAL = "private"

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_RFC3339 = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})"
)


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an RFC 3339 timestamp; offsets are mandatory."""
    if not value:
        raise ValueError("timestamp is empty")
    if not _RFC3339.fullmatch(value):
        raise ValueError(f"timestamp {value!r} is not RFC 3339")
    return datetime.fromisoformat(value)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# Intake protocol -----------------------------------------------------------


class IntakeRequest(BaseModel):
    """Envelope of one request line."""

    type: str = ""
    data: Any = None


class IntakeResponse(BaseModel):
    ok: bool
    error: Optional[str] = None
    message: Optional[str] = None

    def to_line(self) -> bytes:
        return (self.model_dump_json(exclude_none=True) + "\n").encode("utf-8")


class ActivityData(BaseModel):
    """Payload of an ``activity`` request; every field may be absent or null."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    project: Optional[str] = None
    git_remote: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    filename: Optional[str] = None
    filetype: Optional[str] = None
    lines_added: Optional[int] = Field(default=None, ge=INT64_MIN, le=INT64_MAX)
    lines_removed: Optional[int] = Field(default=None, ge=INT64_MIN, le=INT64_MAX)
    git_branch: Optional[str] = None
    actions_per_minute: Optional[float] = None
    words_per_minute: Optional[float] = None
    editor: Optional[str] = None

    def to_activity(self, machine: str) -> Activity:
        """Build a domain activity, stamping the daemon's own ``machine``.

        End before start is accepted; only parseability is checked here.
        """
        try:
            started_at = parse_timestamp(self.started_at)
        except ValueError as exc:
            raise ClientInputFault("invalid started_at") from exc
        try:
            ended_at = parse_timestamp(self.ended_at)
        except ValueError as exc:
            raise ClientInputFault("invalid ended_at") from exc

        return Activity(
            started_at=started_at,
            ended_at=ended_at,
            project=self.project or "",
            git_remote=self.git_remote or "",
            filename=self.filename or "",
            filetype=self.filetype or "",
            lines_added=self.lines_added or 0,
            lines_removed=self.lines_removed or 0,
            git_branch=self.git_branch or "",
            actions_per_minute=self.actions_per_minute or 0.0,
            words_per_minute=self.words_per_minute or 0.0,
            editor=self.editor or DEFAULT_EDITOR,
            machine=machine,
        )


def decode_request(line: bytes) -> IntakeRequest:
    try:
        return IntakeRequest.model_validate_json(line)
    except ValidationError as exc:
        raise ClientInputFault("invalid json") from exc


def decode_activity(data: Any) -> ActivityData:
    try:
        return ActivityData.model_validate(data if data is not None else {})
    except ValidationError as exc:
        raise ClientInputFault("invalid activity data") from exc


# Forwarding protocol -------------------------------------------------------


class ActivityPayload(BaseModel):
    """One activity as the collector expects it.

    Optional fields left as ``None`` are dropped from the JSON body.
    """

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    client_uuid: str = Field(alias="clientUUID")
    project: Optional[str] = None
    git_remote: Optional[str] = Field(default=None, alias="gitRemote")
    started_at: str = Field(alias="startedAt")
    ended_at: str = Field(alias="endedAt")
    filename: Optional[str] = None
    filetype: Optional[str] = None
    lines_added: int = Field(alias="linesAdded")
    lines_removed: int = Field(alias="linesRemoved")
    git_branch: Optional[str] = Field(default=None, alias="gitBranch")
    actions_per_minute: Optional[float] = Field(default=None, alias="actionsPerMinute")
    words_per_minute: Optional[float] = Field(default=None, alias="wordsPerMinute")
    editor: str
    machine: Optional[str] = None

    @classmethod
    def from_activity(cls, activity: Activity, metrics_only: bool = False) -> "ActivityPayload":
        project = activity.project
        git_remote = activity.git_remote
        filename = activity.filename
        if metrics_only:
            project = PRIVATE_LITERAL
            git_remote = PRIVATE_LITERAL
            filename = ""

        return cls(
            client_uuid=activity.client_id or "",
            project=project or None,
            git_remote=git_remote or None,
            started_at=format_timestamp(activity.started_at),
            ended_at=format_timestamp(activity.ended_at),
            filename=filename or None,
            filetype=activity.filetype or None,
            lines_added=activity.lines_added,
            lines_removed=activity.lines_removed,
            git_branch=activity.git_branch or None,
            actions_per_minute=_finite(activity.actions_per_minute),
            words_per_minute=_finite(activity.words_per_minute),
            editor=activity.editor,
            machine=activity.machine or None,
        )


class SyncRequest(BaseModel):
    activities: List[ActivityPayload]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class SyncedActivity(BaseModel):
    id: str


class SyncResponse(BaseModel):
    success: bool
    count: int = 0
    activities: Optional[List[SyncedActivity]] = None


def _finite(value: float) -> Optional[float]:
    # Zero and non-finite rates are left off the wire.
    if not value or not math.isfinite(value):
        return None
    return value
