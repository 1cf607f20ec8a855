"""
Context Builder IO Module

- FileSystem: Abstract file system interface
- DiskFileSystem: Local disk (fsspec)
- MemoryFileSystem: In-memory file system (morefs), used with `--vfs`
- wrap_io_error: Decorator translating OS errors into ctxbuilder exceptions

Usage:
    from ctxbuilder.io import create_fs

    fs = create_fs()
    content = fs.read_text(Path("ctxb.yml"))
"""

from .fs import (
    FileSystem,
    BackendFileSystem,
    DiskFileSystem,
    MemoryFileSystem,
    create_fs,
    wrap_io_error,
)

__all__ = [
    'FileSystem',
    'BackendFileSystem',
    'DiskFileSystem',
    'MemoryFileSystem',
    'create_fs',
    'wrap_io_error',
]
