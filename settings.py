import sys
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    base_dir: Path = Path(".")
    scripts_dir: Path = Path("./Scripts")
    static_dir: Path = Path("./static")
    python_executable: str = sys.executable
    image_script: str = "images.py"
    document_script: str = "illustrator_process.py"
    job_input_filename: str = "meta_file_list.csv"

    # Handed to the stage processes; also read from the plain AWS_* variables
    aws_access_key_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PPL_AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID"),
    )
    aws_secret_access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PPL_AWS_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"),
    )
    aws_region: str = Field(
        default="us-east-2",
        validation_alias=AliasChoices("PPL_AWS_REGION", "AWS_REGION"),
    )

    # Host variables a stage process may inherit; everything else is withheld
    inherited_env_vars: list[str] = Field(default_factory=lambda: [
        "PATH", "SYSTEMROOT", "WINDIR", "COMSPEC", "PATHEXT",
        "HOME", "USERPROFILE", "LANG", "LC_ALL", "TMPDIR", "TEMP", "TMP",
    ])

    error_markers: list[str] = Field(default_factory=lambda: ["ERROR -", "CRITICAL -"])
    warning_markers: list[str] = Field(default_factory=lambda: ["WARNING -"])
    progress_marker: str = "PHOTOSHOP_COMPLETE"

    host: str = "0.0.0.0"
    port: int = 3002
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PPL_",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("error_markers", "warning_markers")
    @classmethod
    def markers_must_not_be_empty(cls, v: list[str]) -> list[str]:
        cleaned = [m for m in v if m]
        if not cleaned:
            raise ValueError("at least one non-empty marker is required")
        return cleaned

    @field_validator("progress_marker")
    @classmethod
    def progress_marker_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("progress_marker must not be blank")
        return v

    @field_validator("port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def download_root(self) -> Path:
        return self.base_dir / "Download"

    @property
    def output_root(self) -> Path:
        return self.base_dir / "Output"

    @property
    def printpanels_dir(self) -> Path:
        return self.base_dir / "printpanels"

    @property
    def printpanels_output_root(self) -> Path:
        return self.printpanels_dir / "output"

    @property
    def job_input_root(self) -> Path:
        return self.printpanels_dir / "csv"

    @property
    def image_script_path(self) -> Path:
        return self.scripts_dir / self.image_script

    @property
    def document_script_path(self) -> Path:
        return self.scripts_dir / self.document_script

    @property
    def aws_credentials_set(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key)
