"""Stage descriptors for the fixed image → document sequence.

The orchestrator walks this list in order and stops at the first failure, so
tests can substitute stub programs by building their own descriptors.
"""
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from models.job import JobInput
from models.session import SessionStage
from models.workspace import Workspace
from settings import Settings

ArgsBuilder = Callable[[JobInput, Workspace], list[str]]


@dataclass(frozen=True)
class StageDescriptor:
    name: str                     # published as the ``type`` of progress events
    session_stage: SessionStage
    script_path: Path
    build_args: ArgsBuilder
    complete_event: str
    error_event: str
    complete_message: str
    progress_on_complete: int


def _raw_job_text(job: JobInput, workspace: Workspace) -> list[str]:
    return [job.csv_data]


def _job_input_file(job: JobInput, workspace: Workspace) -> list[str]:
    return [str(workspace.job_input_path)]


def default_stages(settings: Settings) -> list[StageDescriptor]:
    return [
        StageDescriptor(
            name=settings.image_script_path.stem,
            session_stage=SessionStage.IMAGE_PROCESSING,
            script_path=settings.image_script_path,
            build_args=_raw_job_text,
            complete_event="imageProcessingComplete",
            error_event="imageProcessingError",
            complete_message="Image processing completed successfully",
            progress_on_complete=50,
        ),
        StageDescriptor(
            name=settings.document_script_path.stem,
            session_stage=SessionStage.PDF_GENERATION,
            script_path=settings.document_script_path,
            build_args=_job_input_file,
            complete_event="pdfGenerationComplete",
            error_event="pdfGenerationError",
            complete_message="PDF generation completed successfully",
            progress_on_complete=100,
        ),
    ]
