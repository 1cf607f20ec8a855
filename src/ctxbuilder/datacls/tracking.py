import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel

from ..io.fs import FileSystem
from ..exceptions import CtxPathNotFoundError

logger = logging.getLogger(__name__)


def _normalized(path) -> Path:
    # absolute() keeps "..", normpath folds it without following links
    return Path(os.path.normpath(Path(path).absolute()))


class TrackedEntry(BaseModel):
    """
        One file copied into the assembly: where it came from, where it went,
        and the source metadata seen when it was last looked at.
    """
    src_file: Path
    dest_file: Path
    mtime: Optional[float] = None
    size: Optional[int] = None

    def refresh(self, fs: FileSystem) -> bool:
        """Re-read source metadata, return True if it changed"""
        try:
            st = fs.stat(self.src_file)
            mtime, size = st.st_mtime, st.st_size
        except CtxPathNotFoundError:
            mtime, size = None, None
        changed = (mtime, size) != (self.mtime, self.size)
        self.mtime, self.size = mtime, size
        return changed


class TrackedFileSet:
    """
    Tracked entries keyed by destination path.
    Adding an entry for a known destination replaces the earlier one.
    """

    def __init__(self, entries: Optional[List[TrackedEntry]] = None):
        self._entries: Dict[Path, TrackedEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: TrackedEntry):
        if entry.dest_file in self._entries:
            logger.debug(f"[Tracker] '{entry.dest_file}' reported twice, keeping '{entry.src_file}'")
        self._entries[entry.dest_file] = entry

    def get(self, dest_file: Path) -> Optional[TrackedEntry]:
        return self._entries.get(Path(dest_file))

    @property
    def entries(self) -> List[TrackedEntry]:
        return list(self._entries.values())

    def entries_for_sources(self, sources: List[Path]) -> List[TrackedEntry]:
        """Entries whose source is one of `sources`"""
        wanted = {_normalized(s) for s in sources}
        return [e for e in self._entries.values() if _normalized(e.src_file) in wanted]

    def updated_entries_and_refresh(self, fs: FileSystem) -> List[TrackedEntry]:
        """Entries whose source changed since the last look, metadata is refreshed as a side effect"""
        return [e for e in self._entries.values() if e.refresh(fs)]

    def entries_changed_since(self, fs: FileSystem, timestamp: Optional[float]) -> List[TrackedEntry]:
        """
        Entries whose source was modified after `timestamp` or is gone.
        Without a timestamp every entry counts as changed.
        """
        if timestamp is None:
            return self.entries
        changed = []
        for entry in self._entries.values():
            entry.refresh(fs)
            if entry.mtime is None or entry.mtime > timestamp:
                changed.append(entry)
        return changed

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TrackedEntry]:
        return iter(self._entries.values())

    def __bool__(self) -> bool:
        return bool(self._entries)
