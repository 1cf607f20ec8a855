"""
Directory layout of one image build.

Every image gets its own root below the project output directory:

    <base_dir>/<output_dir>/<sanitized image name>/
        build/   output directory, recipe and assembly land here
        work/    working directory
        tmp/     archives and the changed-files staging area
"""
import re
import logging
from pathlib import Path
from typing import List

from .. import constants
from ..config import ProjectParams
from ..datacls.dirs import BuildDirs
from ..io.fs import FileSystem
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_image_name(image_name: str) -> List[str]:
    """
    Turn an image name into safe path components.
    'registry:5000/org/app:1.0' -> ['registry', '5000', 'org', 'app', '1.0']
    """
    if not image_name or not image_name.strip():
        raise ConfigurationError("Image name must not be empty")
    parts = []
    for part in re.split(r"[/:]", image_name.strip()):
        part = _INVALID_CHARS.sub("_", part)
        if part in ("", ".", ".."):
            part = "_" * max(len(part), 1)
        parts.append(part)
    return parts


def compute_dirs(image_name: str, params: ProjectParams) -> BuildDirs:
    """Pure path arithmetic, nothing is created"""
    root = params.output_path.joinpath(*sanitize_image_name(image_name))
    return BuildDirs(
        image_name=image_name,
        root_directory=root,
        output_directory=root / constants.BUILD_SUBDIR,
        working_directory=root / constants.WORK_SUBDIR,
        temporary_root_directory=root / constants.TMP_SUBDIR,
    )


def compute_and_create_dirs(image_name: str, params: ProjectParams, fs: FileSystem, clean: bool = False) -> BuildDirs:
    """
    Compute the build directories of `image_name` and make sure they exist.

    Args:
        image_name: Name of the image, may contain registry, path and tag
        params: Project parameters
        fs: FileSystem to create the directories on
        clean: Empty the output and working directories first

    Raises:
        ConfigurationError: if the image name is empty
        FilesystemError: if a directory cannot be created or emptied
    """
    dirs = compute_dirs(image_name, params)
    if clean:
        for directory in (dirs.output_directory, dirs.working_directory):
            logger.debug(f"[Layout] Cleaning {directory}")
            fs.clean_dir(directory)
    for directory in (dirs.output_directory, dirs.working_directory, dirs.temporary_root_directory):
        fs.mkdir(directory, parents=True, exist_ok=True)
    logger.debug(f"[Layout] Build directories for '{image_name}' ready under {dirs.root_directory}")
    return dirs
