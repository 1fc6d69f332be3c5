from pathlib import Path

from pydantic import BaseModel, ConfigDict


class Workspace(BaseModel):
    """Run-scoped directories for one job.

    Created once per job under a unique ``run_id`` and never reused. Nothing
    here is deleted by the service; retention is left to the host.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    download_dir: Path
    output_dir: Path
    pipeline_output_dir: Path
    job_input_dir: Path
    job_input_path: Path

    @property
    def directories(self) -> list[Path]:
        return [self.download_dir, self.output_dir, self.pipeline_output_dir, self.job_input_dir]

    def to_payload(self) -> dict[str, str]:
        """Paths in the shape clients receive in ``processComplete.data``."""
        return {
            "downloadDir": str(self.download_dir),
            "outputDir": str(self.output_dir),
            "printpanelsOutputDir": str(self.pipeline_output_dir),
            "csvPath": str(self.job_input_path),
        }
