import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION",
                 "PPL_AWS_ACCESS_KEY_ID", "PPL_AWS_SECRET_ACCESS_KEY", "PPL_AWS_REGION",
                 "PPL_PORT", "PPL_PROGRESS_MARKER"):
        monkeypatch.delenv(name, raising=False)


def test_settings_defaults():
    s = Settings()
    assert s.base_dir == Path(".")
    assert s.port == 3002
    assert s.aws_region == "us-east-2"
    assert s.aws_access_key_id is None
    assert s.python_executable == sys.executable
    assert s.progress_marker == "PHOTOSHOP_COMPLETE"
    assert s.error_markers == ["ERROR -", "CRITICAL -"]
    assert s.warning_markers == ["WARNING -"]
    assert not s.aws_credentials_set


def test_settings_derived_paths():
    s = Settings(base_dir=Path("/srv/panels"), scripts_dir=Path("/srv/panels/Scripts"))
    assert s.download_root == Path("/srv/panels/Download")
    assert s.output_root == Path("/srv/panels/Output")
    assert s.printpanels_output_root == Path("/srv/panels/printpanels/output")
    assert s.job_input_root == Path("/srv/panels/printpanels/csv")
    assert s.image_script_path == Path("/srv/panels/Scripts/images.py")
    assert s.document_script_path == Path("/srv/panels/Scripts/illustrator_process.py")


def test_aws_credentials_read_from_plain_env(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIAENV")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "from-env")
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    s = Settings()
    assert s.aws_access_key_id == "AKIAENV"
    assert s.aws_secret_access_key == "from-env"
    assert s.aws_region == "eu-west-1"
    assert s.aws_credentials_set


def test_aws_credentials_by_field_name():
    s = Settings(aws_access_key_id="AKIA", aws_secret_access_key="s3cr3t")
    assert s.aws_credentials_set


def test_settings_env_prefix(monkeypatch):
    monkeypatch.setenv("PPL_PORT", "8080")
    monkeypatch.setenv("PPL_PROGRESS_MARKER", "STAGE_ONE_DONE")
    s = Settings()
    assert s.port == 8080
    assert s.progress_marker == "STAGE_ONE_DONE"


def test_port_must_be_valid():
    with pytest.raises(ValidationError):
        Settings(port=0)
    with pytest.raises(ValidationError):
        Settings(port=70000)


def test_markers_must_not_be_empty():
    with pytest.raises(ValidationError):
        Settings(error_markers=[])
    with pytest.raises(ValidationError):
        Settings(warning_markers=[""])


def test_progress_marker_must_not_be_blank():
    with pytest.raises(ValidationError):
        Settings(progress_marker="   ")
