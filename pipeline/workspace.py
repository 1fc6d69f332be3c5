"""Run workspaces: the directories one job reads from and writes to.

Layout under ``settings.base_dir`` for a run id ``R``:

    Download/R/                 images fetched by the image stage
    Output/R/                   processed images
    printpanels/output/R/       generated PDFs
    printpanels/csv/R/meta_file_list.csv   persisted job text
"""
import logging
import uuid
from datetime import datetime, timezone

from models.workspace import Workspace
from pipeline.errors import WorkspaceError
from settings import Settings

logger = logging.getLogger(__name__)


def new_run_id(now: datetime | None = None) -> str:
    """Timestamp-based run id, e.g. ``2024-01-01T12-00-00-123Z-1a2b3c4d``.

    The random suffix keeps two runs started in the same millisecond apart.
    """
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def create_workspace(settings: Settings, run_id: str) -> Workspace:
    """Create every run directory for ``run_id`` and return the Workspace."""
    job_input_dir = settings.job_input_root / run_id
    workspace = Workspace(
        run_id=run_id,
        download_dir=settings.download_root / run_id,
        output_dir=settings.output_root / run_id,
        pipeline_output_dir=settings.printpanels_output_root / run_id,
        job_input_dir=job_input_dir,
        job_input_path=job_input_dir / settings.job_input_filename,
    )
    try:
        for directory in workspace.directories:
            directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise WorkspaceError(f"Failed to create workspace {run_id}: {exc}") from exc

    logger.info("Workspace %s created under %s", run_id, settings.base_dir)
    return workspace


def persist_job_input(workspace: Workspace, csv_data: str) -> None:
    try:
        workspace.job_input_path.write_text(csv_data, encoding="utf-8")
    except OSError as exc:
        raise WorkspaceError(
            f"Failed to write job input to {workspace.job_input_path}: {exc}"
        ) from exc
    logger.debug("Job input written → %s", workspace.job_input_path)
