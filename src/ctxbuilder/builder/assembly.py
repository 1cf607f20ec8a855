"""
Placing a resolved assembly into the output directory.

In `dir` mode every entry is copied to `<output>/maven/<dest>`; in the
archive modes the entries are packed into `<output>/maven.<ext>`.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .. import constants
from ..constants import AssemblyMode, Compression
from ..datacls.assembly import Assembly
from ..datacls.dirs import BuildDirs
from ..io.fs import FileSystem
from ..utils.typing_compat import override
from .archiver import Archiver, TarArchiver, ZipArchiver

logger = logging.getLogger(__name__)


def assembly_directory(build_dirs: BuildDirs) -> Path:
    return build_dirs.output_directory / constants.ASSEMBLY_NAME


def packed_assembly_path(build_dirs: BuildDirs, mode: AssemblyMode) -> Path:
    return build_dirs.output_directory / f"{constants.ASSEMBLY_NAME}.{mode.extension}"


class AssemblyArchiver(ABC):
    """Turns a resolved assembly into files below the output directory"""

    def __init__(self, fs: FileSystem):
        self.fs = fs

    @abstractmethod
    def create_archive(self, assembly: Assembly, build_dirs: BuildDirs) -> Path:
        """Place the assembly and return where it went"""
        pass


class DirectoryAssemblyArchiver(AssemblyArchiver):
    @override
    def create_archive(self, assembly: Assembly, build_dirs: BuildDirs) -> Path:
        target = assembly_directory(build_dirs)
        self.fs.clean_dir(target)
        for entry in assembly.entries:
            self.fs.copy(entry.source, target / entry.dest)
        logger.info(f"[Assembly] Copied {len(assembly.entries)} files into {target} ({assembly.id})")
        return target


class PackedAssemblyArchiver(AssemblyArchiver):
    def __init__(self, fs: FileSystem, mode: AssemblyMode):
        super().__init__(fs)
        self.mode = mode

    def _archiver(self) -> Archiver:
        if self.mode is AssemblyMode.ZIP:
            return ZipArchiver(self.fs)
        compression = Compression.GZIP if self.mode is AssemblyMode.TGZ else Compression.NONE
        return TarArchiver(self.fs, compression)

    @override
    def create_archive(self, assembly: Assembly, build_dirs: BuildDirs) -> Path:
        archiver = self._archiver()
        for entry in assembly.entries:
            archiver.add_file(entry.source, entry.dest)
        dest = archiver.create_archive(packed_assembly_path(build_dirs, self.mode))
        logger.info(f"[Assembly] Packed {len(assembly.entries)} files into {dest} ({assembly.id})")
        return dest


def create_assembly_archiver(mode: AssemblyMode, fs: FileSystem) -> AssemblyArchiver:
    if mode.is_archive:
        return PackedAssemblyArchiver(fs, mode)
    return DirectoryAssemblyArchiver(fs)
