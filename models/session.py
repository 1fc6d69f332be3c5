"""Session model: the per-client pipeline state machine.

A session moves forward through a fixed order of stages:

    pending → image_processing → pdf_generation → completed

``failed`` can be entered from any non-terminal stage. ``completed`` and
``failed`` are terminal: once reached, the session is never patched again.
"""
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SessionStage(str, Enum):
    PENDING = "pending"
    IMAGE_PROCESSING = "image_processing"
    PDF_GENERATION = "pdf_generation"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_STAGE_ORDER = [
    SessionStage.PENDING,
    SessionStage.IMAGE_PROCESSING,
    SessionStage.PDF_GENERATION,
    SessionStage.COMPLETED,
]

_TERMINAL_STAGES = frozenset({SessionStage.COMPLETED, SessionStage.FAILED})

_PATCHABLE_FIELDS = frozenset({
    "stage", "progress", "status", "end_time", "last_update", "last_message", "error",
})


class InvalidTransitionError(ValueError):
    """Raised when a patch would move a session backwards or out of a terminal stage."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Snapshot of one client's pipeline run.

    Instances are frozen; the session store replaces its snapshot with the
    result of :meth:`apply` on every update.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: datetime | None = None
    last_update: datetime | None = None
    stage: SessionStage = SessionStage.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    status: SessionStatus = SessionStatus.RUNNING
    last_message: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in _TERMINAL_STAGES or self.status != SessionStatus.RUNNING

    def apply(self, **patch) -> "Session":
        """Return a copy with ``patch`` applied under the state-machine rules.

        - ``stage`` may stay put or move forward; ``failed`` is allowed from any
          non-terminal stage.
        - ``progress`` never decreases: lower values are clamped to the current one.
        - A terminal session rejects every patch.
        """
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch session fields: {sorted(unknown)}")
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Session {self.id} is already {self.status.value}; refusing update"
            )

        if "stage" in patch:
            new_stage = SessionStage(patch["stage"])
            _check_stage_transition(self.stage, new_stage)
            patch["stage"] = new_stage

        if "status" in patch:
            patch["status"] = SessionStatus(patch["status"])

        if "progress" in patch:
            patch["progress"] = max(self.progress, min(int(patch["progress"]), 100))

        patch.setdefault("last_update", _utcnow())
        return self.model_copy(update=patch)


def _check_stage_transition(current: SessionStage, new: SessionStage) -> None:
    if new == current or new == SessionStage.FAILED:
        return
    if _STAGE_ORDER.index(new) < _STAGE_ORDER.index(current):
        raise InvalidTransitionError(
            f"Stage cannot move backwards from {current.value} to {new.value}"
        )
