import re
from datetime import datetime, timezone

import pytest

from pipeline.errors import WorkspaceError
from pipeline.workspace import create_workspace, new_run_id, persist_job_input


class TestRunId:
    def test_format(self):
        run_id = new_run_id(datetime(2024, 1, 1, 12, 30, 5, 123456, tzinfo=timezone.utc))
        assert re.fullmatch(r"2024-01-01T12-30-05-123Z-[0-9a-f]{8}", run_id)

    def test_unique_within_same_instant(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert len({new_run_id(now) for _ in range(50)}) == 50

    def test_filesystem_safe(self):
        assert ":" not in new_run_id()
        assert "." not in new_run_id()


class TestCreateWorkspace:
    def test_directories_created(self, tmp_settings):
        ws = create_workspace(tmp_settings, "run-1")
        base = tmp_settings.base_dir
        assert ws.download_dir == base / "Download" / "run-1"
        assert ws.output_dir == base / "Output" / "run-1"
        assert ws.pipeline_output_dir == base / "printpanels" / "output" / "run-1"
        assert ws.job_input_path == base / "printpanels" / "csv" / "run-1" / "meta_file_list.csv"
        assert all(d.is_dir() for d in ws.directories)

    def test_runs_do_not_share_paths(self, tmp_settings):
        a = create_workspace(tmp_settings, new_run_id())
        b = create_workspace(tmp_settings, new_run_id())
        assert set(a.to_payload().values()).isdisjoint(b.to_payload().values())

    def test_failure_raises_workspace_error(self, tmp_settings):
        # A regular file where the Download directory should go
        (tmp_settings.base_dir / "Download").write_text("not a directory")
        with pytest.raises(WorkspaceError):
            create_workspace(tmp_settings, "run-1")


class TestPersistJobInput:
    def test_text_written_verbatim(self, tmp_settings):
        ws = create_workspace(tmp_settings, "run-1")
        persist_job_input(ws, "http://a/img.png,Widget,red,small\n")
        assert ws.job_input_path.read_text(encoding="utf-8") == "http://a/img.png,Widget,red,small\n"

    def test_missing_directory_raises_workspace_error(self, tmp_settings):
        ws = create_workspace(tmp_settings, "run-1")
        ws.job_input_dir.rmdir()
        with pytest.raises(WorkspaceError):
            persist_job_input(ws, "u,n")
