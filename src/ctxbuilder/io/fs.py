"""
File system layer.

Everything the builder reads or writes goes through a `FileSystem`, so a
build can run against the local disk or entirely in memory (`--vfs`).
Both backends speak the fsspec API; the disk backend is fsspec's local
file system, the memory backend is morefs' `MemFS`.

Paths handed in are `pathlib.Path`s; listings come back as POSIX strings
relative to the listed directory.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, IO
from datetime import datetime
from pathlib import Path, PurePosixPath
import logging
import os
import posixpath
import shutil
import fsspec
from morefs.memory import MemFS
from ..utils.typing_compat import override
from ..exceptions import (
    FilesystemError,
    CtxPathExistsError,
    CtxPathNotFoundError,
    CtxNotAFileError,
    CtxNotADirectoryError,
)

logger = logging.getLogger(__name__)

_FILE_MODE = 0o100000
_DIR_MODE = 0o040755
_DEFAULT_PERMS = 0o644


def wrap_io_error(func):
    """Translate OS and text decoding errors raised by `func` into `FilesystemError` subclasses."""

    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except FileExistsError as e:
            raise CtxPathExistsError(e) from e
        except FileNotFoundError as e:
            raise CtxPathNotFoundError(e) from e
        except IsADirectoryError as e:
            raise CtxNotAFileError(e) from e
        except NotADirectoryError as e:
            raise CtxNotADirectoryError(e) from e
        except UnicodeDecodeError as e:
            target = args[1] if len(args) > 1 else kwargs.get("path")
            raise FilesystemError(f"Cannot decode '{target}' as text: {e}") from e
        except PermissionError as e:
            raise FilesystemError(e) from e

    wrapper.__name__ = func.__name__
    wrapper.__doc__ = func.__doc__
    return wrapper


class FileSystem(ABC):
    """What the builder needs from a file system"""

    @abstractmethod
    def read_text(self, path: Path) -> str:
        pass

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        pass

    @abstractmethod
    def write_text(self, path: Path, content: str):
        """Write `content`, creating missing parent directories"""
        pass

    @abstractmethod
    def copy(self, src: Path, dst: Path):
        """Copy one regular file, creating missing parent directories of `dst`"""
        pass

    @abstractmethod
    def exists(self, path: Path) -> bool:
        pass

    @abstractmethod
    def is_dir(self, path: Path) -> bool:
        pass

    @abstractmethod
    def is_file(self, path: Path) -> bool:
        pass

    @abstractmethod
    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False):
        pass

    @abstractmethod
    def rmtree(self, path: Path):
        """Remove `path` and everything below it, a missing path is not an error"""
        pass

    @abstractmethod
    def find(self, path: Path) -> List[str]:
        """Regular files below `path` as sorted POSIX paths relative to it"""
        pass

    @abstractmethod
    def stat(self, path: Path) -> os.stat_result:
        """File status; st_mode, st_size and st_mtime are always meaningful"""
        pass

    @abstractmethod
    def open(self, path: Path, mode: str = "rb", **kwargs) -> IO:
        pass

    @abstractmethod
    def chmod(self, path: Path, mode: int):
        pass

    def read_lines(self, path: Path) -> List[str]:
        return self.read_text(path).splitlines()

    def clean_dir(self, path: Path):
        """Make sure `path` is an existing, empty directory"""
        if self.exists(path):
            if not self.is_dir(path):
                raise CtxNotADirectoryError(f"Cannot clean '{path}': not a directory")
            self.rmtree(path)
        self.mkdir(path, parents=True, exist_ok=True)


# --------------------
#
# fsspec backed file systems
#
# --------------------

class BackendFileSystem(FileSystem, ABC):
    """A `FileSystem` on top of an fsspec compatible backend"""

    def __init__(self, backend, name: str):
        self.fs = backend
        self.name = name

    @abstractmethod
    def path2str(self, path: Path) -> str:
        """Path in the form the backend expects"""
        pass

    def _ensure_parent(self, path: Path):
        parent = self.path2str(Path(path).parent)
        if parent and parent != "/":
            self.fs.mkdirs(parent, exist_ok=True)

    @override
    @wrap_io_error
    def read_text(self, path: Path, encoding: str = "utf-8") -> str:
        logger.debug(f"[{self.name}] Reading {path}")
        with self.fs.open(self.path2str(path), "r", encoding=encoding) as f:
            return f.read()

    @override
    @wrap_io_error
    def read_bytes(self, path: Path) -> bytes:
        logger.debug(f"[{self.name}] Reading bytes of {path}")
        with self.fs.open(self.path2str(path), "rb") as f:
            return f.read()

    @override
    @wrap_io_error
    def write_text(self, path: Path, content: str, encoding: str = "utf-8"):
        logger.debug(f"[{self.name}] Writing {path}")
        self._ensure_parent(path)
        with self.fs.open(self.path2str(path), "w", encoding=encoding) as f:
            f.write(content)

    @override
    @wrap_io_error
    def copy(self, src: Path, dst: Path):
        logger.debug(f"[{self.name}] Copying {src} -> {dst}")
        if not self.is_file(src):
            raise CtxPathNotFoundError(f"Cannot copy '{src}': no such file")
        self._ensure_parent(dst)
        self.fs.copy(self.path2str(src), self.path2str(dst))

    @override
    def exists(self, path: Path) -> bool:
        return self.fs.exists(self.path2str(path))

    @override
    def is_dir(self, path: Path) -> bool:
        return self.fs.isdir(self.path2str(path))

    @override
    def is_file(self, path: Path) -> bool:
        return self.fs.isfile(self.path2str(path))

    @override
    @wrap_io_error
    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False):
        if self.is_file(path):
            raise CtxNotADirectoryError(f"Cannot create directory '{path}': a file is in the way")
        self.fs.mkdirs(self.path2str(path), exist_ok=exist_ok)

    @override
    @wrap_io_error
    def rmtree(self, path: Path):
        target = self.path2str(path)
        if self.fs.exists(target):
            self.fs.rm(target, recursive=True)

    @override
    @wrap_io_error
    def find(self, path: Path) -> List[str]:
        root = self.path2str(path)
        if not self.fs.isdir(root):
            raise CtxNotADirectoryError(f"Cannot list '{path}': not a directory")
        base = _norm_posix(root)
        return sorted(
            posixpath.relpath(_norm_posix(p), base)
            for p in self.fs.find(root, withdirs=False)
        )

    @override
    @wrap_io_error
    def open(self, path: Path, mode: str = "rb", **kwargs) -> IO:
        if "w" in mode or "a" in mode:
            self._ensure_parent(path)
        return self.fs.open(self.path2str(path), mode=mode, **kwargs)


def _norm_posix(path: str) -> str:
    # backends disagree on leading slashes and drive letters
    return "/" + str(path).replace("\\", "/").strip("/")


class DiskFileSystem(BackendFileSystem):
    """The local disk. Copies keep permission bits and follow symlinks."""

    def __init__(self):
        super().__init__(fsspec.filesystem("file"), name="DiskFS")

    @override
    def path2str(self, path: Path) -> str:
        return str(Path(path).absolute())

    @override
    @wrap_io_error
    def copy(self, src: Path, dst: Path):
        logger.debug(f"[{self.name}] Copying {src} -> {dst}")
        Path(dst).parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(src, dst)

    @override
    @wrap_io_error
    def chmod(self, path: Path, mode: int):
        os.chmod(path, mode)

    @override
    @wrap_io_error
    def stat(self, path: Path) -> os.stat_result:
        return Path(path).stat()

    @override
    @wrap_io_error
    def open(self, path: Path, mode: str = "rb", **kwargs) -> IO:
        if "w" in mode or "a" in mode:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        return open(path, mode, **kwargs)


class MemoryFileSystem(BackendFileSystem):
    """
    In-memory file system on morefs.

    morefs has no permission bits, so they are kept on the side; files
    nobody chmod-ed report 0o644.
    """

    def __init__(self):
        super().__init__(MemFS(), name="MemFS")
        self._modes: Dict[str, int] = {}

    @override
    def path2str(self, path: Path) -> str:
        return str(PurePosixPath("/") / PurePosixPath(Path(path).as_posix()))

    @override
    def copy(self, src: Path, dst: Path):
        super().copy(src, dst)
        self._modes[self.path2str(dst)] = self._modes.get(self.path2str(src), _DEFAULT_PERMS)

    @override
    def chmod(self, path: Path, mode: int):
        if not self.exists(path):
            raise CtxPathNotFoundError(f"Cannot chmod '{path}': no such file")
        self._modes[self.path2str(path)] = mode & 0o7777

    @override
    @wrap_io_error
    def stat(self, path: Path) -> os.stat_result:
        info = self.fs.info(self.path2str(path))
        stamp = info.get("modified") or info.get("created")
        mtime = stamp.timestamp() if isinstance(stamp, datetime) else float(stamp or 0)
        size = info.get("size") or 0
        if info.get("type") == "directory":
            mode = _DIR_MODE
        else:
            mode = _FILE_MODE | self._modes.get(self.path2str(path), _DEFAULT_PERMS)
        return os.stat_result((mode, 0, 0, 1, 0, 0, size, mtime, mtime, mtime))


def create_fs(use_vfs: bool = False) -> FileSystem:
    """The file system a build works on, in memory when `use_vfs` is set"""
    if use_vfs:
        return MemoryFileSystem()
    return DiskFileSystem()
