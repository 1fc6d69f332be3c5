"""Pipeline orchestrator: run one session's job through every stage.

Per submitted job the session channel receives, in order:

    processingProgress / processingWarning / processingError   (0..n, per line)
    processStatus                                              (on the progress marker)
    imageProcessingComplete | imageProcessingError
    pdfGenerationComplete   | pdfGenerationError               (only after image success)
    processError                                               (validation/workspace/unexpected)
    processComplete                                            (exactly once, always last)

Once the session record has been deleted (client disconnect) nothing more is
stored or published for it; any stage process still running is left alone
and finishes silently.
"""
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

from models.events import ClassifiedEvent, ProcessResult, StageOutcome
from models.job import JobInput
from models.session import SessionStage, SessionStatus
from models.workspace import Workspace
from pipeline.errors import PipelineError, ProcessExecutionError, ProcessStartError
from pipeline.events import (
    PROCESS_COMPLETE,
    PROCESS_ERROR,
    PROCESS_STATUS,
    PROCESSING_ERROR,
    PROCESSING_PROGRESS,
    PROCESSING_WARNING,
    EventSink,
)
from pipeline.log_classifier import LogClassifier
from pipeline.session_store import SessionStore
from pipeline.stages import StageDescriptor, default_stages
from pipeline.supervisor import ProcessSupervisor, build_stage_environment
from pipeline.workspace import create_workspace, new_run_id, persist_job_input
from settings import Settings
from utils.csv_job import parse_job_input

logger = logging.getLogger(__name__)

# severity → (event name, payload key)
_LINE_EVENTS = {
    "info": (PROCESSING_PROGRESS, "output"),
    "warning": (PROCESSING_WARNING, "warning"),
    "error": (PROCESSING_ERROR, "error"),
}

# Progress reported when the progress marker shows up in stage output
_MARKER_PROGRESS = 50

_SUCCESS_MESSAGE = "All processing completed successfully"


class PipelineOrchestrator:
    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        sink: EventSink,
        supervisor: ProcessSupervisor | None = None,
        stages: list[StageDescriptor] | None = None,
        classifier: LogClassifier | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.sink = sink
        self.supervisor = supervisor or ProcessSupervisor(
            classifier or LogClassifier.from_settings(settings)
        )
        self.stages = stages if stages is not None else default_stages(settings)

    async def submit(self, session_id: str, csv_data: Any) -> ProcessResult:
        """Run a job for ``session_id`` and return its terminal result.

        Raises SessionBusyError, before anything is published, if the session
        already has a running job. Every other failure is reported on the
        session channel and returned as an unsuccessful ProcessResult.
        """
        self.store.create(session_id)
        logger.info("Session %s: job submitted", session_id)

        try:
            result = await self._run(session_id, csv_data)
        except PipelineError as exc:
            logger.error("Session %s: %s", session_id, exc)
            result = self._abort(session_id, exc)
        except Exception as exc:
            logger.exception("Session %s: unexpected error while orchestrating", session_id)
            result = self._abort(session_id, exc)

        self._publish(session_id, PROCESS_COMPLETE, result.to_payload())
        logger.info(
            "Session %s: finished (%s)", session_id, "success" if result.success else "failed"
        )
        return result

    # ---------------------------------------------------------------------------
    # Stage sequencing
    # ---------------------------------------------------------------------------

    async def _run(self, session_id: str, csv_data: Any) -> ProcessResult:
        job = parse_job_input(csv_data)
        workspace = create_workspace(self.settings, new_run_id())
        persist_job_input(workspace, job.csv_data)
        logger.info(
            "Session %s: %d row(s), workspace %s", session_id, len(job.rows), workspace.run_id
        )

        for descriptor in self.stages:
            outcome = await self._run_stage(session_id, descriptor, job, workspace)
            if not outcome.success:
                error = _stage_error(outcome)
                logger.error("Session %s: %s failed: %s", session_id, descriptor.name, outcome.reason)
                self._mark_failed(session_id, str(error))
                self._publish(
                    session_id, descriptor.error_event, {"status": "error", "message": str(error)}
                )
                return ProcessResult(success=False, error=str(error))

            self._publish(
                session_id,
                descriptor.complete_event,
                {"status": "success", "message": descriptor.complete_message},
            )
            self.store.update(session_id, progress=descriptor.progress_on_complete)

        self.store.update(
            session_id,
            status=SessionStatus.COMPLETED,
            stage=SessionStage.COMPLETED,
            progress=100,
            end_time=datetime.now(timezone.utc),
        )
        return ProcessResult(
            success=True,
            message=_SUCCESS_MESSAGE,
            data=workspace.to_payload(),
        )

    async def _run_stage(
        self,
        session_id: str,
        descriptor: StageDescriptor,
        job: JobInput,
        workspace: Workspace,
    ) -> StageOutcome:
        self.store.update(session_id, stage=descriptor.session_stage)
        args = [str(descriptor.script_path), *descriptor.build_args(job, workspace)]
        try:
            return await self.supervisor.run(
                self.settings.python_executable,
                args,
                build_stage_environment(self.settings),
                partial(self._on_stage_event, session_id, descriptor),
                stage=descriptor.name,
                cwd=self.settings.base_dir,
            )
        except Exception as exc:
            # Raised by event handling, after the process exited and its pipes drained
            logger.exception("Session %s: event handling failed in %s", session_id, descriptor.name)
            return StageOutcome(
                stage=descriptor.name,
                success=False,
                reason=f"{descriptor.name} event handling failed: {exc}",
            )

    def _on_stage_event(
        self,
        session_id: str,
        descriptor: StageDescriptor,
        event: ClassifiedEvent,
    ) -> None:
        session = self.store.update(session_id, last_message=event.text)
        if session is None:
            return

        event_name, key = _LINE_EVENTS[event.severity]
        self._publish(session_id, event_name, {"type": descriptor.name, key: event.text})

        if event.severity == "info" and self.settings.progress_marker in event.text:
            session = self.store.update(session_id, progress=_MARKER_PROGRESS)
            if session is not None:
                self._publish(session_id, PROCESS_STATUS, {
                    "stage": session.stage.value,
                    "progress": session.progress,
                    "message": event.text,
                })

    # ---------------------------------------------------------------------------
    # Failure handling
    # ---------------------------------------------------------------------------

    def _abort(self, session_id: str, exc: Exception) -> ProcessResult:
        message = str(exc) or type(exc).__name__
        self._publish(session_id, PROCESS_ERROR, {"status": "error", "message": message})
        self._mark_failed(session_id, message)
        return ProcessResult(success=False, error=message)

    def _mark_failed(self, session_id: str, message: str) -> None:
        session = self.store.get(session_id)
        if session is None or session.is_terminal:
            return
        self.store.update(
            session_id,
            status=SessionStatus.FAILED,
            stage=SessionStage.FAILED,
            error=message,
            end_time=datetime.now(timezone.utc),
        )

    def _publish(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        if session_id not in self.store:
            logger.debug("Session %s gone; dropping %s", session_id, event_name)
            return
        try:
            self.sink.publish(session_id, event_name, payload)
        except Exception:
            # Delivery is fire-and-forget; a broken channel must not stop the run
            logger.exception("Session %s: failed to publish %s", session_id, event_name)


def _stage_error(outcome: StageOutcome) -> PipelineError:
    if not outcome.started:
        return ProcessStartError(outcome.reason)
    return ProcessExecutionError(outcome.reason)
