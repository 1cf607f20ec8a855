"""
Change tracking for watch and patch loops.

A tracking pass resolves the assembly like a production build does, but
hands it to a `MappingTrackArchiver` that only records where every file
would go. Later a subset of the recorded entries can be packed into a
small `changed-files.tar` laid out relative to the assembly directory.
"""
import os
import logging
import threading
from pathlib import Path
from typing import List, Optional

from .. import constants
from ..config import BuildImageModel, ProjectParams
from ..datacls.assembly import Assembly, AssemblySource
from ..datacls.dirs import BuildDirs
from ..datacls.tracking import TrackedEntry, TrackedFileSet
from ..io.fs import FileSystem
from ..protocols import AssemblyResolverProtocol
from ..utils.typing_compat import override
from ..exceptions import InvalidPathError
from .archiver import TarArchiver
from .assembly import AssemblyArchiver, assembly_directory
from .fileset import FileSet
from .layout import compute_and_create_dirs
from .resolver import DescriptorResolver

logger = logging.getLogger(__name__)

# One tracking pass at a time, process wide
TRACKING_LOCK = threading.Lock()


class MappingTrackArchiver(AssemblyArchiver):
    """Records (source, destination) pairs instead of writing files"""

    def __init__(self, fs: FileSystem):
        super().__init__(fs)
        self._entries: List[TrackedEntry] = []

    def init(self):
        self._entries = []

    @override
    def create_archive(self, assembly: Assembly, build_dirs: BuildDirs) -> Path:
        target = assembly_directory(build_dirs)
        for entry in assembly.entries:
            tracked = TrackedEntry(src_file=entry.source, dest_file=target / entry.dest)
            tracked.refresh(self.fs)
            self._entries.append(tracked)
        return target

    def tracked_file_set(self) -> TrackedFileSet:
        return TrackedFileSet(self._entries)


class ChangeTracker:
    """
    Runs tracking passes and builds incremental archives.

    All trackers share `TRACKING_LOCK` unless given their own lock, so
    tracking passes serialize even across image names. Incremental
    archives for the same image name must be serialized by the caller.
    """

    def __init__(self, fs: FileSystem, resolver: Optional[AssemblyResolverProtocol] = None,
                 lock: Optional[threading.Lock] = None):
        self.fs = fs
        self.resolver = resolver or DescriptorResolver(fs)
        self._lock = lock or TRACKING_LOCK
        self._archiver = MappingTrackArchiver(fs)

    def record_assembly_pass(self, image_name: str, build_config: BuildImageModel,
                             params: ProjectParams) -> TrackedFileSet:
        """Resolve the assembly in tracking mode and return the destination -> source mapping"""
        build_dirs = compute_and_create_dirs(image_name, params, self.fs)
        if not build_config.has_assembly():
            logger.debug(f"[Tracker] '{image_name}' has no assembly, nothing to track")
            return TrackedFileSet()

        source = AssemblySource(
            pass_id=constants.PASS_TRACKER,
            params=params,
            build_dirs=build_dirs,
            assembly=build_config.assembly,
            build=build_config,
        )
        with self._lock:
            self._archiver.init()
            assembly = self.resolver.resolve(source)
            self._archiver.create_archive(assembly, build_dirs)
            tracked = self._archiver.tracked_file_set()
        logger.info(f"[Tracker] Tracking {len(tracked)} files for '{image_name}'")
        return tracked

    def build_incremental_archive(self, entries: List[TrackedEntry], assembly_directory: Path,
                                  image_name: str, params: ProjectParams) -> Path:
        """
        Pack the current content of the given entries into `<tmp>/changed-files.tar`.

        Each file lands at its destination path relative to `assembly_directory`.

        Raises:
            InvalidPathError: if a destination lies outside `assembly_directory`
            FilesystemError: if a source cannot be copied
        """
        build_dirs = compute_and_create_dirs(image_name, params, self.fs)
        tmp = build_dirs.temporary_root_directory
        staging = tmp / constants.CHANGED_FILES_DIR
        self.fs.clean_dir(staging)

        base = Path(os.path.normpath(Path(assembly_directory).absolute()))
        for entry in entries:
            dest = Path(os.path.normpath(Path(entry.dest_file).absolute()))
            try:
                rel = dest.relative_to(base)
            except ValueError as e:
                raise InvalidPathError(
                    f"Changed file '{entry.dest_file}' is not inside assembly directory '{assembly_directory}'"
                ) from e
            logger.debug(f"[Tracker] Staging {entry.src_file} as {rel.as_posix()}")
            self.fs.copy(entry.src_file, staging / rel)

        archiver = TarArchiver(self.fs)
        archiver.add_file_set(FileSet(directory=staging, use_default_excludes=False))
        archive = archiver.create_archive(tmp / constants.CHANGED_FILES_ARCHIVE)
        logger.info(f"[Tracker] {len(entries)} changed files packed into {archive}")
        return archive
