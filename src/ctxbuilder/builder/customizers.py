"""
Archiver customizers.

A customizer adds content to an archiver and hands it back. Exactly one
content customizer is used per build; it may be wrapped by one
permission-normalizing customizer.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .. import constants
from ..io.fs import FileSystem
from ..utils.typing_compat import override
from .archiver import Archiver
from .fileset import FileSet, apply_ignore_rules

logger = logging.getLogger(__name__)


class ArchiverCustomizer(ABC):
    @abstractmethod
    def customize(self, archiver: Archiver) -> Archiver:
        pass


class RecipeDirCustomizer(ArchiverCustomizer):
    """Adds the directory holding a user supplied Dockerfile, filtered by its marker files"""

    def __init__(self, dockerfile: Path, fs: FileSystem):
        self.dockerfile = Path(dockerfile)
        self.fs = fs

    @override
    def customize(self, archiver: Archiver) -> Archiver:
        file_set = FileSet(directory=self.dockerfile.parent, use_default_excludes=False)
        apply_ignore_rules(file_set, self.fs)
        archiver.add_file_set(file_set)
        return archiver


class GeneratedRecipeCustomizer(ArchiverCustomizer):
    """Adds a generated Dockerfile at the archive root"""

    def __init__(self, dockerfile: Path):
        self.dockerfile = Path(dockerfile)

    @override
    def customize(self, archiver: Archiver) -> Archiver:
        archiver.add_file(self.dockerfile, constants.DOCKERFILE_NAME)
        return archiver


class AllFilesExecCustomizer(ArchiverCustomizer):
    """Runs the wrapped customizer, then sets the executable bits of every file in the archiver"""

    def __init__(self, wrapped: ArchiverCustomizer):
        self.wrapped = wrapped

    @override
    def customize(self, archiver: Archiver) -> Archiver:
        logger.warning(
            "[Exec] All files in the build context are made executable. "
            "Files end up in the image with permissions other than on disk."
        )
        archiver = self.wrapped.customize(archiver)
        for entry in archiver.resources():
            entry.mode |= constants.EXEC_BITS
        return archiver
