"""End-to-end tests for the vtag command line."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from vidtag.cli import app
from vidtag.core.tagging import read_tags

runner = CliRunner()


@pytest.fixture(autouse=True)
def _drop_cli_log_handlers():
    # The CLI callback points the root logger at the runner's stdout.
    yield
    logging.getLogger().handlers.clear()


def _json_line(output: str):
    return json.loads(output.strip().splitlines()[-1])


def test_help_footer_contains_usage_tip():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Use `vtag [COMMAND] --help`" in result.output


@pytest.mark.parametrize("flag", ["--version", "-v"])
def test_version_needs_no_command(flag):
    from vidtag import __version__

    result = runner.invoke(app, [flag])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_apply_preview_reports_without_writing(make_mp4):
    path = make_mp4()
    before = path.read_bytes()
    result = runner.invoke(app, ["tag", "apply", str(path), "--set", "Title=Hello", "--preview", "--json"])
    assert result.exit_code == 0, result.output
    payload = _json_line(result.output)
    assert payload["report"] is None
    assert payload["files"][0]["fields"]["Write"]["status"] == "Preview"
    assert path.read_bytes() == before


def test_apply_writes_report_and_audit(tmp_path, make_mp4):
    path = make_mp4()
    report_dir = tmp_path / "reports"
    result = runner.invoke(
        app,
        [
            "tag",
            "apply",
            str(path),
            "-s",
            "Title=Hello",
            "-s",
            "year=2022",
            "--no-backup",
            "--report-dir",
            str(report_dir),
            "--yes",
        ],
    )
    assert result.exit_code == 0, result.output
    assert read_tags(path) == {"Title": "Hello", "Year": "2022"}
    assert not Path(str(path) + ".bak_vtag").exists()

    reports = list(report_dir.glob("apply_report_*.json"))
    assert len(reports) == 1
    data = json.loads(reports[0].read_text(encoding="utf-8"))
    assert data["files"][0]["fields"]["Write"]["status"] == "Success"

    tail = runner.invoke(app, ["audit", "tail", "--json"])
    assert tail.exit_code == 0, tail.output
    assert '"operation": "apply"' in tail.output


def test_apply_exit_code_reflects_failures(tmp_path, make_mp4, make_junk):
    good = make_mp4()
    bad = make_junk("broken.mkv")
    result = runner.invoke(
        app, ["tag", "apply", str(good), str(bad), "--set", "Title=x", "--yes", "--no-backup"]
    )
    assert result.exit_code == 1
    assert read_tags(good) == {"Title": "x"}


def test_apply_needs_something_to_set(make_mp4):
    result = runner.invoke(app, ["tag", "apply", str(make_mp4())])
    assert result.exit_code == 2
    assert "Nothing to apply" in result.output


def test_apply_rejects_unknown_field(make_mp4):
    result = runner.invoke(app, ["tag", "apply", str(make_mp4()), "--set", "Rating=5"])
    assert result.exit_code == 2
    assert "Unknown field" in result.output


def test_apply_with_no_supported_files(tmp_path):
    other = tmp_path / "notes.txt"
    other.write_text("x", encoding="utf-8")
    result = runner.invoke(app, ["tag", "apply", str(other), "--set", "Title=x"])
    assert result.exit_code == 0
    assert "No supported video files" in result.output


def test_show_lists_tags(make_mp4):
    path = make_mp4()
    runner.invoke(app, ["tag", "apply", str(path), "--set", "Comment=Nice", "--yes"])
    result = runner.invoke(app, ["tag", "show", str(path), "--json"])
    assert result.exit_code == 0, result.output
    assert _json_line(result.output) == {"Comment": "Nice"}


def test_remove_substring_and_restore(make_mp4):
    path = make_mp4()
    runner.invoke(app, ["tag", "apply", str(path), "--set", "Title=Clip SAMPLE", "--yes", "--no-backup"])
    original = path.read_bytes()

    result = runner.invoke(
        app, ["tag", "remove-substring", str(path), "--substring", " sample", "--yes"]
    )
    assert result.exit_code == 0, result.output
    assert read_tags(path)["Title"] == "Clip"

    backup = Path(str(path) + ".bak_vtag")
    assert backup.read_bytes() == original
    restored = runner.invoke(app, ["tag", "restore", str(backup)])
    assert restored.exit_code == 0, restored.output
    assert read_tags(path)["Title"] == "Clip SAMPLE"


def test_remove_substring_rejects_year(make_mp4):
    result = runner.invoke(
        app, ["tag", "remove-substring", str(make_mp4()), "--field", "Year", "--substring", "1"]
    )
    assert result.exit_code == 2


def test_restore_rejects_non_backup(tmp_path):
    other = tmp_path / "clip.mp4"
    other.write_bytes(b"x")
    result = runner.invoke(app, ["tag", "restore", str(other)])
    assert result.exit_code == 1
    assert "Not a backup file" in result.output


def test_caps_fields_json(make_mp4, make_junk):
    files = [str(make_mp4()), str(make_junk("b.mkv"))]
    result = runner.invoke(app, ["caps", "fields", *files, "--json"])
    assert result.exit_code == 0, result.output
    rows = {r["field"]: r for r in _json_line(result.output)}
    assert rows["Title"]["tooltip"] == "Supported in all"
    assert rows["Comment"]["tooltip"] == "Supported 1/2"
    assert rows["Provider"]["enabled"] is False


def test_caps_show_and_path():
    shown = runner.invoke(app, ["caps", "show", "--ext", ".mkv"])
    assert shown.exit_code == 0, shown.output
    assert "Unsupported" in shown.output

    path = runner.invoke(app, ["caps", "path"])
    assert path.exit_code == 0
    assert "loaded" in path.output


def test_caps_show_mkv_points_at_mkvpropedit():
    shown = runner.invoke(app, ["caps", "show", "--ext", "mkv"])
    assert shown.exit_code == 0, shown.output
    assert "external_tool_order" in shown.output
    assert "atomicparsley,exiftool,mkvpropedit" in shown.output

    enabled = runner.invoke(
        app, ["config", "set", "external_tool_order", "atomicparsley,exiftool,mkvpropedit"]
    )
    assert enabled.exit_code == 0, enabled.output
    shown = runner.invoke(app, ["caps", "show", "--ext", "mkv"])
    assert shown.exit_code == 0, shown.output
    assert "external_tool_order" not in shown.output

    mp4 = runner.invoke(app, ["caps", "show", "--ext", "mp4"])
    assert "Note:" not in mp4.output


def test_preset_lifecycle(make_mp4):
    saved = runner.invoke(
        app, ["preset", "save", "Trip", "--set", "Title=Beach", "--set", "Comment=Sun", "--uncheck", "Comment"]
    )
    assert saved.exit_code == 0, saved.output

    listed = runner.invoke(app, ["preset", "list"])
    assert "Trip" in listed.output

    path = make_mp4()
    applied = runner.invoke(app, ["tag", "apply", str(path), "--preset", "trip", "--yes"])
    assert applied.exit_code == 0, applied.output
    assert read_tags(path) == {"Title": "Beach"}

    assert runner.invoke(app, ["preset", "delete", "Trip"]).exit_code == 0
    assert runner.invoke(app, ["preset", "show", "Trip"]).exit_code == 1


def test_apply_with_unknown_preset(make_mp4):
    result = runner.invoke(app, ["tag", "apply", str(make_mp4()), "--preset", "ghost"])
    assert result.exit_code == 2
    assert "No preset named" in result.output


def test_config_set_and_show(isolated_settings):
    result = runner.invoke(app, ["config", "set", "create_backup", "false"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["config", "set", "external-tool-order", "exiftool, mkvpropedit"])
    assert result.exit_code == 0, result.output

    saved = json.loads(isolated_settings.read_text(encoding="utf-8"))
    assert saved["create_backup"] is False
    assert saved["external_tool_order"] == ["exiftool", "mkvpropedit"]

    shown = runner.invoke(app, ["config", "show", "--json"])
    assert shown.exit_code == 0, shown.output
    data = _json_line(shown.output)
    assert data["create_backup"] is False
    assert "audit_log_path" in data["resolved"]


def test_config_set_rejects_bad_input():
    assert runner.invoke(app, ["config", "set", "no_such_key", "1"]).exit_code == 2
    assert runner.invoke(app, ["config", "set", "max_batch_default", "0"]).exit_code == 2


def test_diag_tools_json():
    result = runner.invoke(app, ["diag", "tools", "--json"])
    assert result.exit_code == 0, result.output
    report = _json_line(result.output)
    assert set(report["tools"]) == {"atomicparsley", "exiftool", "mkvpropedit"}
    assert report["capability_matrix"]["ok"] is True
    assert "mp4" in report["capability_matrix"]["formats"]


def test_audit_tail_when_empty():
    result = runner.invoke(app, ["audit", "tail"])
    assert result.exit_code == 0
    assert "No audit records" in result.output
