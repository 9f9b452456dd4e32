import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

console = Console()

TIMESTAMP_LENGTH = 14
# Characters between the end of the timestamp and the end of the name (".txt")
TIMESTAMP_SUFFIX = 4
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class ArchiveError(Exception):
    pass


@dataclass
class ArchiveResult:
    moved: list[Path] = field(default_factory=list)
    locked: list[Path] = field(default_factory=list)
    unparsed: list[Path] = field(default_factory=list)
    vanished: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)


def parse_timestamp(name: str) -> datetime | None:
    """Extract the YYYYMMDDhhmmss timestamp that precedes the extension in a transcript name."""
    end = len(name) - TIMESTAMP_SUFFIX
    start = end - TIMESTAMP_LENGTH
    if start < 0:
        return None
    stamp = name[start:end]
    if not stamp.isdigit():
        return None
    try:
        return datetime.strptime(stamp, TIMESTAMP_FORMAT)
    except ValueError:
        return None


if os.name == "nt":
    import msvcrt

    PROBE_MODE = "r+b"
    # ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
    SHARING_ERRORS = (32, 33)

    def _try_lock(f) -> bool:
        try:
            msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
        return True
else:
    import fcntl

    PROBE_MODE = "rb"
    SHARING_ERRORS = ()

    def _try_lock(f) -> bool:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            return False
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        return True


def is_locked(path: Path) -> bool:
    """Return True if another process holds the file open exclusively.

    Raises FileNotFoundError if the file disappeared before the probe.
    """
    try:
        with open(path, PROBE_MODE) as f:
            return not _try_lock(f)
    except PermissionError as e:
        return getattr(e, "winerror", None) in SHARING_ERRORS


class TranscriptArchiver:
    """Moves dated transcript files into root/YYYY/MM/DD folders."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def day_dir(self, stamp: datetime) -> Path:
        return self.root / f"{stamp:%Y}" / f"{stamp:%m}" / f"{stamp:%d}"

    def archive(self, dry_run: bool = False) -> ArchiveResult:
        """Move every unlocked transcript directly under the root folder."""
        if not self.root.is_dir():
            raise ArchiveError(f"Transcripts folder '{self.root}' does not exist")

        result = ArchiveResult()
        for path in sorted(self.root.iterdir()):
            if not path.is_file():
                continue

            stamp = parse_timestamp(path.name)
            if stamp is None:
                console.print(f"[yellow]Skipping {escape(path.name)}:[/yellow] no timestamp in name")
                result.unparsed.append(path)
                continue

            try:
                locked = is_locked(path)
            except FileNotFoundError:
                self._skip_vanished(path, result)
                continue

            if locked:
                self._skip_locked(path, result)
                continue

            target_dir = self.day_dir(stamp)
            target = target_dir / path.name
            if dry_run:
                console.print(f"[dim]Would move {escape(path.name)} -> {escape(str(target))}[/dim]")
            else:
                try:
                    target_dir.mkdir(parents=True, exist_ok=True)
                    shutil.move(str(path), str(target))
                except FileNotFoundError:
                    self._skip_vanished(path, result)
                    continue
                except PermissionError:
                    # Locked between the probe and the move
                    self._skip_locked(path, result)
                    continue
                except OSError as e:
                    console.print(f"[red]Could not move {escape(path.name)}:[/red] {escape(str(e))}")
                    result.failed.append(path)
                    continue
            result.moved.append(target)

        return result

    def _skip_locked(self, path: Path, result: ArchiveResult) -> None:
        console.print(f"[yellow]Skipping {escape(path.name)}:[/yellow] file is in use")
        result.locked.append(path)

    def _skip_vanished(self, path: Path, result: ArchiveResult) -> None:
        console.print(f"[yellow]Skipping {escape(path.name)}:[/yellow] file no longer exists")
        result.vanished.append(path)
