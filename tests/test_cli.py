"""End-to-end tests for the command-line interface."""

import json
from datetime import datetime

import pytest
from click.testing import CliRunner
from PIL import Image

from photo_triage.cli import cli
from photo_triage.platforms.local import EXIF_DATETIME
from photo_triage.utils.config import Config


def save_photo(path, taken, color=(30, 120, 200)):
    img = Image.new("RGB", (64, 48), color=color)
    for x in range(32):
        for y in range(48):
            img.putpixel((x, y), (250, 250, 250))
    exif = Image.Exif()
    exif[EXIF_DATETIME] = taken.strftime("%Y:%m:%d %H:%M:%S")
    img.save(path, "JPEG", exif=exif)
    return path


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "cfg" / "config.json"
    Config(path).set("safety.use_recycle_bin", False)
    return path


@pytest.fixture
def library(tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    taken = datetime(2024, 3, 15, 12, 0)
    save_photo(root / "a.jpg", taken)
    save_photo(root / "b.jpg", taken)
    save_photo(root / "c.jpg", datetime(2024, 3, 10, 12, 0), color=(0, 0, 0))
    return root


def invoke(runner, config_file, *args, **kwargs):
    return runner.invoke(cli, ["--config", str(config_file), *args], **kwargs)


@pytest.fixture
def authorized(runner, config_file, library):
    result = invoke(runner, config_file, "authorize", "--library", str(library), "--yes")
    assert result.exit_code == 0, result.output
    return config_file


@pytest.fixture
def scanned(runner, authorized):
    result = invoke(runner, authorized, "scan", "--no-progress")
    assert result.exit_code == 0, result.output
    return authorized


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "photo-triage" in result.output


def test_authorize_grants_access(runner, authorized):
    assert Config(authorized).get("library.consent") is True

    result = invoke(runner, authorized, "status")

    assert result.exit_code == 0
    assert "authorized" in result.output


def test_authorize_can_be_denied(runner, config_file, library):
    result = invoke(runner, config_file, "authorize", "--library", str(library), "--deny")

    assert result.exit_code == 0
    assert "denied" in result.output


def test_authorize_prompts_without_yes(runner, config_file, library):
    result = invoke(
        runner, config_file, "authorize", "--library", str(library), input="n\n"
    )

    assert "denied" in result.output
    assert Config(config_file).get("library.consent") is False


def test_scan_requires_authorization(runner, config_file):
    result = invoke(runner, config_file, "scan", "--no-progress")

    assert result.exit_code == 1
    assert "not authorized" in result.output


def test_scan_builds_index(runner, scanned):
    index_path = Config(scanned).get_index_path()
    data = json.loads(index_path.read_text())

    assert data["formatVersion"] == 1
    assert len(data["fingerprints"]) == 3


def test_detect_without_index(runner, authorized):
    result = invoke(runner, authorized, "detect")

    assert result.exit_code == 1
    assert "Run a scan first" in result.output


def test_detect_reports_and_saves_groups(runner, scanned, tmp_path):
    output = tmp_path / "report" / "duplicates.json"

    result = invoke(runner, scanned, "detect", "--output", str(output))

    assert result.exit_code == 0, result.output
    assert "Duplicate Detection Summary" in result.output
    groups = json.loads(output.read_text())
    assert len(groups) == 1
    assert groups[0]["representative"]["localIdentifier"].endswith("a.jpg")
    assert [d["localIdentifier"][-5:] for d in groups[0]["duplicates"]] == ["b.jpg"]


def test_detect_after_removing_copy(runner, scanned, library):
    (library / "b.jpg").unlink()

    result = invoke(runner, scanned, "scan", "--no-progress")
    assert result.exit_code == 0

    result = invoke(runner, scanned, "detect")
    assert result.exit_code == 0
    assert "No exact duplicates detected." in result.output


def test_detect_delete_all_can_be_declined(runner, scanned, library):
    result = invoke(runner, scanned, "detect", "--delete-all", input="n\n")

    assert result.exit_code == 0
    assert "Deletion cancelled." in result.output
    assert (library / "b.jpg").exists()


def test_detect_delete_all(runner, scanned, library):
    result = invoke(runner, scanned, "detect", "--delete-all", "--yes")

    assert result.exit_code == 0, result.output
    assert "Requested deletion for 1 assets." in result.output
    assert not (library / "b.jpg").exists()
    assert (library / "a.jpg").exists()


def test_detect_deletes_selected_duplicate(runner, scanned, library):
    result = invoke(runner, scanned, "detect", "--delete", str(library / "b.jpg"), "--yes")

    assert result.exit_code == 0, result.output
    assert "Requested deletion for 1 assets." in result.output
    assert not (library / "b.jpg").exists()
    assert (library / "a.jpg").exists()


def test_detect_refuses_to_delete_a_kept_photo(runner, scanned, library):
    result = invoke(runner, scanned, "detect", "--delete", str(library / "a.jpg"), "--yes")

    assert result.exit_code == 1
    assert "Not a duplicate in this report" in result.output
    assert (library / "a.jpg").exists()
    assert (library / "b.jpg").exists()


def test_months(runner, authorized):
    result = invoke(runner, authorized, "months")

    assert result.exit_code == 0
    assert "March 2024" in result.output


def test_triage_unknown_month(runner, authorized):
    result = invoke(runner, authorized, "triage", "1999-01")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_triage_deletes_marked_photos(runner, authorized, library):
    # Newest first: a.jpg and b.jpg share a time, so a.jpg comes first.
    result = invoke(runner, authorized, "triage", "2024-03", input="d\nk\nc\ny\nq\n")

    assert result.exit_code == 0, result.output
    assert "Deleted 1 photos." in result.output
    assert not (library / "a.jpg").exists()
    assert (library / "b.jpg").exists()


def test_triage_quit_keeps_files(runner, authorized, library):
    result = invoke(runner, authorized, "triage", "2024-03", input="d\nq\n")

    assert result.exit_code == 0
    assert "marked but not deleted" in result.output
    assert (library / "a.jpg").exists()


def test_protect_and_unprotect(runner, config_file):
    result = invoke(runner, config_file, "protect", "--folder", "Holidays")
    assert result.exit_code == 0
    assert "Holidays" in Config(config_file).get("protected_folders")

    result = invoke(runner, config_file, "unprotect", "--folder", "Holidays")
    assert result.exit_code == 0
    assert "Holidays" not in Config(config_file).get("protected_folders")
