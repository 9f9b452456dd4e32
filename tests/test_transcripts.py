import os
import shutil
from datetime import datetime

import pytest

from tenantnet import transcripts
from tenantnet.transcripts import ArchiveError, TranscriptArchiver, is_locked, parse_timestamp

NAME = "PowerShell_transcript.HOST01.Ab3xYz.20240115093000.txt"


def test_parse_timestamp():
    assert parse_timestamp(NAME) == datetime(2024, 1, 15, 9, 30, 0)


@pytest.mark.parametrize("name", ["notes.txt", "transcript.2024011509300x.txt", "x.20241315093000.txt"])
def test_parse_timestamp_rejects(name):
    assert parse_timestamp(name) is None


def test_archive_moves_into_day_folders(tmp_path):
    (tmp_path / NAME).write_text("log")
    other = "PowerShell_transcript.HOST02.Qq9.20231231235959.txt"
    (tmp_path / other).write_text("log")

    result = TranscriptArchiver(tmp_path).archive()

    assert (tmp_path / "2024" / "01" / "15" / NAME).read_text() == "log"
    assert (tmp_path / "2023" / "12" / "31" / other).exists()
    assert not (tmp_path / NAME).exists()
    assert len(result.moved) == 2
    assert result.locked == []


def test_archive_skips_unparsed_and_directories(tmp_path):
    (tmp_path / "readme.txt").write_text("x")
    (tmp_path / "2024").mkdir()

    result = TranscriptArchiver(tmp_path).archive()

    assert result.moved == []
    assert [p.name for p in result.unparsed] == ["readme.txt"]
    assert (tmp_path / "readme.txt").exists()


def test_dry_run_leaves_files(tmp_path):
    (tmp_path / NAME).write_text("log")

    result = TranscriptArchiver(tmp_path).archive(dry_run=True)

    assert (tmp_path / NAME).exists()
    assert result.moved == [tmp_path / "2024" / "01" / "15" / NAME]
    assert not (tmp_path / "2024").exists()


def test_missing_root(tmp_path):
    with pytest.raises(ArchiveError):
        TranscriptArchiver(tmp_path / "missing").archive()


@pytest.mark.skipif(os.name == "nt", reason="uses flock")
def test_locked_file_is_skipped(tmp_path):
    import fcntl

    path = tmp_path / NAME
    path.write_text("log")

    with open(path, "r+b") as holder:
        fcntl.flock(holder.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        assert is_locked(path)
        result = TranscriptArchiver(tmp_path).archive()
        fcntl.flock(holder.fileno(), fcntl.LOCK_UN)

    assert result.locked == [path]
    assert result.moved == []
    assert path.exists()
    assert not is_locked(path)


def test_move_permission_error_skips_and_continues(tmp_path, monkeypatch):
    second = "PowerShell_transcript.HOST02.Qq9.20240116080000.txt"
    (tmp_path / NAME).write_text("log")
    (tmp_path / second).write_text("log")
    real_move = shutil.move

    def _move(src, dst):
        if src.endswith(NAME):
            raise PermissionError(32, "being used by another process")
        return real_move(src, dst)

    monkeypatch.setattr(shutil, "move", _move)

    result = TranscriptArchiver(tmp_path).archive()

    assert result.locked == [tmp_path / NAME]
    assert result.moved == [tmp_path / "2024" / "01" / "16" / second]
    assert (tmp_path / NAME).exists()


def test_other_move_errors_are_collected(tmp_path, monkeypatch):
    (tmp_path / NAME).write_text("log")

    def _move(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(shutil, "move", _move)

    result = TranscriptArchiver(tmp_path).archive()

    assert result.failed == [tmp_path / NAME]
    assert result.moved == []


def test_file_removed_before_probe_is_skipped(tmp_path, monkeypatch):
    (tmp_path / NAME).write_text("log")

    def _gone(path):
        path.unlink()
        raise FileNotFoundError(str(path))

    monkeypatch.setattr(transcripts, "is_locked", _gone)

    result = TranscriptArchiver(tmp_path).archive()

    assert result.vanished == [tmp_path / NAME]
    assert result.moved == []


def test_is_locked_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        is_locked(tmp_path / NAME)


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_read_only_file_is_not_locked(tmp_path):
    path = tmp_path / NAME
    path.write_text("log")
    path.chmod(0o444)

    assert not is_locked(path)

    result = TranscriptArchiver(tmp_path).archive()

    assert result.locked == []
    assert (tmp_path / "2024" / "01" / "15" / NAME).exists()
