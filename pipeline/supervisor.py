"""Process supervisor: run one stage program and resolve its outcome.

The child is started without a shell and with an explicit environment (see
:func:`build_stage_environment`). stdout and stderr are drained concurrently,
line by line, until both reach EOF; only then is the exit code read. Every
non-blank line is handed to ``on_event`` as soon as it arrives:

  - stderr lines go through the LogClassifier (info / warning / error)
  - stdout lines are progress output and always count as info

A line longer than the stream limit is dropped whole, up to its newline.

Exit policy:

  exit 0                                  → success
  exit != 0, no error line classified     → success (the stage tools exit
                                            non-zero on benign conditions)
  exit != 0, at least one error line      → failure, with the stderr text
  process could not be started            → failure (OSError, or arguments
                                            the OS rejects such as a NUL byte)
"""
import asyncio
import logging
import os
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from models.events import ClassifiedEvent, StageOutcome
from pipeline.log_classifier import LogClassifier
from settings import Settings

logger = logging.getLogger(__name__)

EventCallback = Callable[[ClassifiedEvent], None]

# Longest single line read from a child pipe; longer lines are dropped up to
# their newline
_STREAM_LIMIT = 1024 * 1024
_READ_CHUNK = 64 * 1024

_SEVERITY_LOG_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def build_stage_environment(
    settings: Settings,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return the complete environment for a stage process.

    Only the variables named in ``settings.inherited_env_vars`` are copied from
    the host; the AWS credentials, region and the unbuffered-output flag are
    added on top. Nothing else from the host environment reaches the child.
    """
    source = os.environ if base_env is None else base_env
    env = {
        name: source[name]
        for name in settings.inherited_env_vars
        if name in source
    }
    env["PYTHONUNBUFFERED"] = "1"
    env["AWS_REGION"] = settings.aws_region
    if settings.aws_access_key_id:
        env["AWS_ACCESS_KEY_ID"] = settings.aws_access_key_id
    if settings.aws_secret_access_key:
        env["AWS_SECRET_ACCESS_KEY"] = settings.aws_secret_access_key
    return env


class ProcessSupervisor:
    def __init__(self, classifier: LogClassifier | None = None) -> None:
        self.classifier = classifier or LogClassifier()

    async def run(
        self,
        command: str,
        args: Sequence[str],
        env: Mapping[str, str],
        on_event: EventCallback,
        *,
        stage: str,
        cwd: Path | None = None,
    ) -> StageOutcome:
        """Run ``command args...`` to completion and return its StageOutcome.

        Never raises for process failures. An exception raised by ``on_event``
        is re-raised only after the process has exited and both pipes are
        drained.
        """
        logger.info("Running %s: %s %s", stage, command, " ".join(str(a) for a in args))
        t0 = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *[str(a) for a in args],
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env),
                cwd=str(cwd) if cwd else None,
                limit=_STREAM_LIMIT,
            )
        except (OSError, ValueError) as exc:
            # ValueError: arguments or environment the OS cannot pass (e.g. a NUL byte)
            reason = f"Failed to start {stage} process: {exc}"
            logger.error(reason)
            return StageOutcome(
                stage=stage,
                success=False,
                started=False,
                elapsed_seconds=time.monotonic() - t0,
                reason=reason,
            )

        run = _StreamState(stage, self.classifier, on_event)
        await asyncio.gather(
            run.drain(proc.stdout, "stdout"),
            run.drain(proc.stderr, "stderr"),
        )
        exit_code = await proc.wait()
        elapsed = time.monotonic() - t0

        if run.callback_errors:
            raise run.callback_errors[0]

        return _resolve_outcome(stage, exit_code, elapsed, run)


class _StreamState:
    """Line accumulation for one running process, shared by its two readers."""

    def __init__(self, stage: str, classifier: LogClassifier, on_event: EventCallback) -> None:
        self.stage = stage
        self.classifier = classifier
        self.on_event = on_event
        self.stderr_lines: list[str] = []
        self.error_lines: list[str] = []
        self.callback_errors: list[Exception] = []

    async def drain(self, stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        pending = b""
        discarding = False  # inside an over-long line, skipping to its newline
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for raw in lines:
                if discarding:
                    discarding = False
                    continue
                self._handle_raw(raw, name)
            if len(pending) > _STREAM_LIMIT:
                if not discarding:
                    logger.warning("[%s] dropped over-long %s line", self.stage, name)
                discarding = True
                pending = b""
        if pending and not discarding:
            self._handle_raw(pending, name)

    def _handle_raw(self, raw: bytes, stream: str) -> None:
        if len(raw) > _STREAM_LIMIT:
            logger.warning("[%s] dropped over-long %s line", self.stage, stream)
            return
        self._handle_line(raw.decode("utf-8", errors="replace").rstrip("\r"), stream)

    def _handle_line(self, text: str, stream: str) -> None:
        if stream == "stderr":
            self.stderr_lines.append(text)
            event = self.classifier.classify(text, self.stage)
        elif text.strip():
            event = ClassifiedEvent(severity="info", source_stage=self.stage, text=text, stream="stdout")
        else:
            event = None

        if event is None:
            return
        if event.severity == "error":
            self.error_lines.append(event.text)
        logger.log(_SEVERITY_LOG_LEVELS[event.severity], "[%s] %s", self.stage, event.text)

        # Keep draining after a callback failure so the child never blocks on a full pipe
        if self.callback_errors:
            return
        try:
            self.on_event(event)
        except Exception as exc:
            self.callback_errors.append(exc)


def _resolve_outcome(stage: str, exit_code: int, elapsed: float, run: _StreamState) -> StageOutcome:
    logger.info("%s exited with code %d after %.1fs", stage, exit_code, elapsed)

    if exit_code == 0:
        return StageOutcome(stage=stage, success=True, exit_code=0, elapsed_seconds=elapsed)

    if not run.error_lines:
        logger.warning(
            "%s exited with code %d but logged no errors; treating as success",
            stage, exit_code,
        )
        return StageOutcome(stage=stage, success=True, exit_code=exit_code, elapsed_seconds=elapsed)

    stderr_text = "\n".join(run.stderr_lines)
    return StageOutcome(
        stage=stage,
        success=False,
        exit_code=exit_code,
        elapsed_seconds=elapsed,
        reason=f"{stage} exited with code {exit_code}\nStderr: {stderr_text}",
        error_lines=list(run.error_lines),
    )
