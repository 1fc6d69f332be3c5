from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["info", "warning", "error"]


class ClassifiedEvent(BaseModel):
    """One non-blank line of stage output, tagged with a severity.

    stderr lines are classified by marker tokens; stdout lines are always info.
    """

    model_config = ConfigDict(frozen=True)

    severity: Severity
    source_stage: str   # e.g. "images"
    text: str
    stream: Literal["stdout", "stderr"] = "stderr"


class StageOutcome(BaseModel):
    """Result of one supervised stage process.

    Success carries exit info; failure carries a reason and the error lines
    that caused it. A non-zero exit without any error line is a success.
    """

    model_config = ConfigDict(frozen=True)

    stage: str
    success: bool
    exit_code: int | None = None   # None when the process never started
    elapsed_seconds: float = 0.0
    reason: str | None = None
    error_lines: list[str] = Field(default_factory=list)
    started: bool = True


class ProcessResult(BaseModel):
    """Terminal outcome of a submitted job, published as ``processComplete``."""

    success: bool
    message: str | None = None
    error: str | None = None
    data: dict[str, str] | None = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)
