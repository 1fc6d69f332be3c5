import sys
from pathlib import Path

import pytest

from settings import Settings

_STAGE_TEMPLATE = """\
import json
import os
import sys
import time

for line in {stdout!r}:
    print(line, flush=True)
for line in {stderr!r}:
    print(line, file=sys.stderr, flush=True)
if {record!r}:
    with open({record!r}, "w", encoding="utf-8") as fh:
        json.dump({{"argv": sys.argv[1:], "env": dict(os.environ)}}, fh)
time.sleep({sleep!r})
sys.exit({exit_code!r})
"""


def write_stage_script(
    path: Path,
    *,
    stdout: list[str] | None = None,
    stderr: list[str] | None = None,
    exit_code: int = 0,
    sleep: float = 0.0,
    record: Path | None = None,
) -> Path:
    """Write a stand-in stage program that prints the given lines and exits.

    With ``record`` set, the program dumps its argv and environment there as JSON.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        _STAGE_TEMPLATE.format(
            stdout=list(stdout or []),
            stderr=list(stderr or []),
            record=str(record) if record else "",
            sleep=sleep,
            exit_code=exit_code,
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings rooted in a fresh temp directory, running stages with this interpreter.

    Layout:
        Scripts/        stage programs (written per test)
        Download/ Output/ printpanels/   created by the workspace on demand
    """
    scripts = tmp_path / "Scripts"
    scripts.mkdir()
    return Settings(
        base_dir=tmp_path,
        scripts_dir=scripts,
        static_dir=tmp_path / "static",
        python_executable=sys.executable,
        aws_access_key_id="AKIATEST",
        aws_secret_access_key="secret-test",
        aws_region="eu-central-1",
    )


@pytest.fixture
def stage_scripts(tmp_settings: Settings):
    """Factory writing both stage programs; returns their record paths."""

    def _write(image: dict | None = None, document: dict | None = None) -> tuple[Path, Path]:
        image_record = tmp_settings.base_dir / "image_record.json"
        document_record = tmp_settings.base_dir / "document_record.json"
        write_stage_script(tmp_settings.image_script_path, record=image_record, **(image or {}))
        write_stage_script(tmp_settings.document_script_path, record=document_record, **(document or {}))
        return image_record, document_record

    return _write
