"""Severity classification for stage log lines.

The stage programs log through Python's ``logging`` with a
``"%(asctime)s - %(levelname)s - %(message)s"`` style format, so every line
carries its level as a literal token such as ``ERROR -``. Classification is a
substring match on those tokens, first match wins:

    1. any error marker    → "error"
    2. any warning marker  → "warning"
    3. anything else       → "info"

Blank lines produce no event. A multi-line traceback is classified one
physical line at a time, so its continuation lines come out as "info".
"""
from collections.abc import Iterable

from models.events import ClassifiedEvent, Severity
from settings import Settings

DEFAULT_ERROR_MARKERS = ("ERROR -", "CRITICAL -")
DEFAULT_WARNING_MARKERS = ("WARNING -",)


class LogClassifier:
    def __init__(
        self,
        error_markers: Iterable[str] = DEFAULT_ERROR_MARKERS,
        warning_markers: Iterable[str] = DEFAULT_WARNING_MARKERS,
    ) -> None:
        self.error_markers = tuple(error_markers)
        self.warning_markers = tuple(warning_markers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LogClassifier":
        return cls(settings.error_markers, settings.warning_markers)

    def severity_of(self, line: str) -> Severity:
        if any(marker in line for marker in self.error_markers):
            return "error"
        if any(marker in line for marker in self.warning_markers):
            return "warning"
        return "info"

    def classify(self, line: str, source_stage: str) -> ClassifiedEvent | None:
        """Return the classified event for ``line``, or None for blank lines."""
        text = line.rstrip("\r\n")
        if not text.strip():
            return None
        return ClassifiedEvent(
            severity=self.severity_of(text),
            source_stage=source_stage,
            text=text,
        )
