"""
Assembly manager, creates the build context archive for an image.
"""
import os
import logging
from pathlib import Path
from typing import List, Optional

from .. import constants
from ..config import AssemblyModel, BuildImageModel, ProjectParams
from ..constants import AssemblyMode, ContextMode, PermissionMode
from ..datacls.assembly import AssemblySource
from ..datacls.dirs import BuildDirs
from ..datacls.tracking import TrackedEntry, TrackedFileSet
from ..io.fs import FileSystem, create_fs
from ..protocols import AssemblyResolverProtocol
from ..exceptions import AssemblyResolutionError, ConfigurationError
from .archiver import TarArchiver
from .assembly import create_assembly_archiver, packed_assembly_path
from .customizers import (
    AllFilesExecCustomizer,
    ArchiverCustomizer,
    GeneratedRecipeCustomizer,
    RecipeDirCustomizer,
)
from .fileset import FileSet
from .layout import compute_and_create_dirs
from .recipe import RecipeBuilder
from .resolver import DescriptorResolver
from .tracker import ChangeTracker

logger = logging.getLogger(__name__)


def context_mode(build_config: BuildImageModel) -> ContextMode:
    """Where the recipe comes from, decided once per build"""
    if build_config.is_dockerfile_mode():
        return ContextMode.USER_RECIPE_DIR
    if build_config.has_assembly():
        return ContextMode.GENERATED_RECIPE
    return ContextMode.NO_ASSEMBLY


def needs_exec_permissions(assembly: Optional[AssemblyModel]) -> bool:
    if assembly is None:
        return False
    if assembly.permissions is PermissionMode.EXEC:
        return True
    # no executable bit to preserve on Windows
    return assembly.permissions is PermissionMode.AUTO and os.name == "nt"


class AssemblyManager:
    """
    Creates build context archives and incremental change archives.
    """

    def __init__(self, fs: Optional[FileSystem] = None,
                 resolver: Optional[AssemblyResolverProtocol] = None,
                 tracker: Optional[ChangeTracker] = None):
        self.fs = fs or create_fs()
        self.resolver = resolver or DescriptorResolver(self.fs)
        self.tracker = tracker or ChangeTracker(self.fs, self.resolver)

    def create_context_archive(self, image_name: str, params: ProjectParams,
                               build_config: BuildImageModel) -> Path:
        """
        Create `<tmp>/docker-build.<suffix>` for `image_name`.

        Raises:
            ConfigurationError: missing Dockerfile or base image
            AssemblyResolutionError: the assembly could not be resolved
            ArchiveError: the archive could not be written
            FilesystemError: files could not be read or written
        """
        build_dirs = compute_and_create_dirs(image_name, params, self.fs, clean=True)
        assembly = build_config.assembly
        assembly_mode = assembly.mode if assembly else AssemblyMode.DIR

        if build_config.has_assembly():
            self._create_assembly_archive(build_config, params, build_dirs)

        mode = context_mode(build_config)
        logger.debug(f"[Manager] '{image_name}' uses context mode {mode.value}")
        if mode is ContextMode.USER_RECIPE_DIR:
            dockerfile = build_config.dockerfile_path(params)
            if not self.fs.is_file(dockerfile):
                raise ConfigurationError(
                    f"Configured Dockerfile \"{build_config.dockerfile or constants.DOCKERFILE_NAME}\" "
                    f"(resolved to \"{dockerfile}\") doesn't exist"
                )
            self._verify_given_dockerfile(dockerfile, build_config)
            customizer: ArchiverCustomizer = RecipeDirCustomizer(dockerfile, self.fs)
        else:
            builder = self.create_recipe_builder(build_config, assembly if build_config.has_assembly() else None)
            dockerfile = builder.write(build_dirs.output_directory, self.fs)
            customizer = GeneratedRecipeCustomizer(dockerfile)

        if needs_exec_permissions(assembly):
            customizer = AllFilesExecCustomizer(customizer)

        return self._create_build_tar_ball(build_dirs, customizer, assembly_mode, build_config)

    def _create_assembly_archive(self, build_config: BuildImageModel, params: ProjectParams,
                                 build_dirs: BuildDirs) -> Path:
        assembly_config = build_config.assembly
        source = AssemblySource(
            pass_id=constants.PASS_DOCKER,
            params=params,
            build_dirs=build_dirs,
            assembly=assembly_config,
            build=build_config,
        )
        try:
            assembly = self.resolver.resolve(source)
        except AssemblyResolutionError as e:
            error = f"Failed to create assembly for docker image (with mode '{assembly_config.mode.value}'): {e}."
            if params.artifact_path is None:
                error += (" If you include the build artifact please ensure that it has been built before"
                          " and that 'project.artifact' points to it.")
            raise AssemblyResolutionError(error) from e
        return create_assembly_archiver(assembly_config.mode, self.fs).create_archive(assembly, build_dirs)

    def _create_build_tar_ball(self, build_dirs: BuildDirs, customizer: ArchiverCustomizer,
                               assembly_mode: AssemblyMode, build_config: BuildImageModel) -> Path:
        compression = build_config.compression
        archive = build_dirs.temporary_root_directory / f"{constants.DOCKER_BUILD_ARCHIVE}.{compression.file_suffix}"
        archiver = TarArchiver(self.fs, compression)
        if assembly_mode.is_archive:
            packed = packed_assembly_path(build_dirs, assembly_mode)
            if self.fs.is_file(packed):
                archiver.add_archived_file_set(packed, prefix=f"{constants.ASSEMBLY_NAME}/")
        else:
            archiver.add_file_set(FileSet(directory=build_dirs.output_directory, use_default_excludes=False))
        archiver = customizer.customize(archiver)
        return archiver.create_archive(archive)

    def _verify_given_dockerfile(self, dockerfile: Path, build_config: BuildImageModel):
        # TODO: warn when the Dockerfile has no COPY or ADD of the assembly directory
        pass

    def create_recipe_builder(self, build_config: BuildImageModel,
                              assembly_config: Optional[AssemblyModel]) -> RecipeBuilder:
        """Recipe builder filled from the build configuration, base image set last"""
        builder = (
            RecipeBuilder()
            .env(build_config.env)
            .labels(build_config.labels)
            .expose(build_config.ports)
            .run(build_config.run)
            .volumes(build_config.volumes)
            .user(build_config.user)
            .maintainer(build_config.maintainer)
            .workdir(build_config.workdir)
        )
        if assembly_config is not None:
            builder.add(
                constants.ASSEMBLY_NAME,
                assembly_config.target_dir,
                user=assembly_config.user,
                export_target_dir=assembly_config.export_target_dir,
            )
        builder.base_image(build_config.from_image)
        builder.health_check(build_config.healthcheck)
        builder.cmd(build_config.effective_cmd())
        builder.entrypoint(build_config.entrypoint)
        builder.optimise(build_config.optimise)
        return builder

    def get_assembly_files(self, image_name: str, build_config: BuildImageModel,
                           params: ProjectParams) -> TrackedFileSet:
        """Tracking pass, see `ChangeTracker.record_assembly_pass`"""
        return self.tracker.record_assembly_pass(image_name, build_config, params)

    def create_changed_files_archive(self, entries: List[TrackedEntry], assembly_directory: Path,
                                     image_name: str, params: ProjectParams) -> Path:
        """Incremental archive, see `ChangeTracker.build_incremental_archive`"""
        return self.tracker.build_incremental_archive(entries, assembly_directory, image_name, params)
