"""Scratch-space helpers: the per-run working area and bundle copies."""

from pathlib import Path
import shutil
import tempfile

from ..logbook import LogBook
from ..models import ArchitectureSlot

WORKDIR_PREFIX = "phatpkg-"


def copy_bundle(source: Path, destination: Path) -> Path:
    """Copies an application bundle, keeping the symlinks frameworks rely on."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, destination, symlinks=True)
    else:
        shutil.copy2(source, destination)
    return destination


def remove_tree(path: Path, logbook: LogBook, source: str, label: str) -> bool:
    """Best-effort recursive delete; failures become warnings."""
    if not path.exists() and not path.is_symlink():
        return True
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        logbook.warning(f"Failed to clean up {label}: {e}", source=source)
        return False
    logbook.debug(f"Cleaned up {label}: {path}", source=source)
    return True


class WorkingArea:
    """
    One uniquely named scratch tree per run. Every temporary directory the
    pipeline needs lives below `root`, so removing it reclaims everything.
    """

    def __init__(self, logbook: LogBook, base_dir: Path | None = None) -> None:
        self.logbook = logbook
        self.root = Path(
            tempfile.mkdtemp(
                prefix=WORKDIR_PREFIX, dir=str(base_dir) if base_dir else None
            )
        )
        self.logbook.debug(f"Created working area: {self.root}", source="WorkingArea")

    def slot_dir(self, slot: ArchitectureSlot) -> Path:
        path = self.root / slot.workdir_name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def scratch_dir(self, slot: ArchitectureSlot) -> Path:
        path = self.root / f"scratch-{slot.workdir_name}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def cleanup(self) -> bool:
        return remove_tree(self.root, self.logbook, "WorkingArea", "main temp directory")

    def __enter__(self) -> "WorkingArea":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()
