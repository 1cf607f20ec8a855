"""
Deterministic tar and zip writers.

Entries are collected first and written on `create_archive`, sorted by
name, with a fixed timestamp and owner so that identical inputs give
byte-identical archives. Adding an entry under a name that is already
taken replaces the earlier one.
"""
import io
import tarfile
import zipfile
import logging
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional

from .. import constants
from ..constants import Compression
from ..io.fs import FileSystem
from ..utils.typing_compat import override
from ..exceptions import ArchiveError, UnsupportedFormatError, CtxPathNotFoundError
from .fileset import FileSet

logger = logging.getLogger(__name__)


@dataclass
class ArchiveEntry:
    name: str
    mode: int
    source: Optional[Path] = None
    data: Optional[bytes] = None

    def read(self, fs: FileSystem) -> bytes:
        if self.data is not None:
            return self.data
        return fs.read_bytes(self.source)


def _entry_name(*parts: str) -> str:
    name = posixpath.normpath(posixpath.join(*[p for p in parts if p]))
    if name.startswith("../") or name in (".", "..") or posixpath.isabs(name):
        raise ArchiveError(f"Invalid archive entry name '{name}'")
    return name


class Archiver(ABC):
    """Collects entries and writes them as one archive"""

    format_name = "archive"

    def __init__(self, fs: FileSystem):
        self.fs = fs
        self._entries: Dict[str, ArchiveEntry] = {}

    def add_entry(self, entry: ArchiveEntry):
        if entry.name in self._entries:
            logger.debug(f"[{self.format_name}] Replacing entry {entry.name}")
        self._entries[entry.name] = entry

    def add_file(self, source: Path, name: str, mode: Optional[int] = None):
        """Add a file of the file system under `name`, keeping its permission bits unless `mode` is given"""
        if not self.fs.is_file(source):
            raise CtxPathNotFoundError(f"Cannot add '{source}' to archive: no such file")
        if mode is None:
            mode = self.fs.stat(source).st_mode & 0o7777
        self.add_entry(ArchiveEntry(name=_entry_name(name), mode=mode, source=Path(source)))

    def add_bytes(self, name: str, data: bytes, mode: int = 0o644):
        self.add_entry(ArchiveEntry(name=_entry_name(name), mode=mode, data=data))

    def add_file_set(self, file_set: FileSet):
        for rel_path in file_set.scan(self.fs):
            self.add_file(file_set.directory / rel_path, _entry_name(file_set.prefix, rel_path))

    def add_archived_file_set(self, archive: Path, prefix: str = ""):
        """Add the regular files of a tar or zip archive, re-rooted below `prefix`"""
        logger.debug(f"[{self.format_name}] Adding content of {archive} below '{prefix}'")
        with self.fs.open(archive, "rb") as raw:
            data = raw.read()
        try:
            if zipfile.is_zipfile(io.BytesIO(data)):
                with zipfile.ZipFile(io.BytesIO(data)) as zf:
                    for info in zf.infolist():
                        if info.is_dir():
                            continue
                        mode = (info.external_attr >> 16) & 0o7777 or 0o644
                        self.add_bytes(_entry_name(prefix, info.filename), zf.read(info), mode)
            else:
                with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tf:
                    for member in tf.getmembers():
                        if not member.isfile():
                            continue
                        content = tf.extractfile(member).read()
                        self.add_bytes(_entry_name(prefix, member.name), content, member.mode & 0o7777)
        except (tarfile.TarError, zipfile.BadZipFile) as e:
            raise ArchiveError(f"Cannot read archive {archive}: {e}") from e

    def resources(self) -> List[ArchiveEntry]:
        """Entries in the order they will be written"""
        return [self._entries[name] for name in sorted(self._entries)]

    def names(self) -> List[str]:
        return sorted(self._entries)

    def create_archive(self, dest: Path) -> Path:
        """Write all entries into `dest`"""
        logger.debug(f"[{self.format_name}] Writing {len(self._entries)} entries to {dest}")
        with self.fs.open(dest, "wb") as raw:
            self._write(raw)
        logger.info(f"[{self.format_name}] Created {dest}")
        return dest

    @abstractmethod
    def _write(self, raw: BinaryIO):
        pass


class TarArchiver(Archiver):
    """POSIX (pax) tar writer with optional gzip or bzip2 compression"""

    format_name = "tar"

    def __init__(self, fs: FileSystem, compression: Compression = Compression.NONE):
        super().__init__(fs)
        self.compression = compression

    def _compressed_stream(self, raw: BinaryIO) -> BinaryIO:
        if self.compression is Compression.NONE:
            return raw
        try:
            if self.compression is Compression.GZIP:
                import gzip
                # empty name and zero mtime keep the gzip header stable
                return gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0)
            if self.compression is Compression.BZIP2:
                import bz2
                return bz2.BZ2File(raw, mode="wb")
        except ImportError as e:
            raise UnsupportedFormatError(f"Compression '{self.compression.value}' is not available: {e}") from e
        raise UnsupportedFormatError(f"Unknown compression '{self.compression}'")

    @override
    def _write(self, raw: BinaryIO):
        stream = self._compressed_stream(raw)
        try:
            with tarfile.open(fileobj=stream, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for entry in self.resources():
                    content = entry.read(self.fs)
                    info = tarfile.TarInfo(name=entry.name)
                    info.size = len(content)
                    info.mode = entry.mode
                    info.mtime = constants.ARCHIVE_MTIME
                    info.uid = constants.ARCHIVE_UID
                    info.gid = constants.ARCHIVE_GID
                    info.uname = ""
                    info.gname = ""
                    tar.addfile(info, io.BytesIO(content))
        except tarfile.TarError as e:
            raise ArchiveError(f"Cannot write tar archive: {e}") from e
        finally:
            if stream is not raw:
                stream.close()


class ZipArchiver(Archiver):
    """Zip writer, used to pre-pack an assembly"""

    format_name = "zip"

    @override
    def _write(self, raw: BinaryIO):
        try:
            with zipfile.ZipFile(raw, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
                for entry in self.resources():
                    info = zipfile.ZipInfo(entry.name, date_time=constants.ZIP_DATE_TIME)
                    info.external_attr = (0o100000 | entry.mode) << 16
                    info.compress_type = zipfile.ZIP_DEFLATED
                    zf.writestr(info, entry.read(self.fs))
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Cannot write zip archive: {e}") from e
