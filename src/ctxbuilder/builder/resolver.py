"""
Default assembly resolver.

Resolves an assembly from an inline descriptor, a descriptor file or one
of the built-in descriptor refs:

- `artifact`: the project artifact at the assembly root
- `project`: the whole project directory except the build directory
- `artifact-with-sources`: the artifact plus the project's `src` tree
"""
import posixpath
import logging
from pathlib import Path
from typing import Callable, Dict, List

import yaml
from pydantic import ValidationError

from ..config import AssemblyDescriptor, FileItemModel, FileSetModel, ProjectParams
from ..datacls.assembly import Assembly, AssemblyEntry, AssemblySource
from ..io.fs import FileSystem
from ..exceptions import (
    AssemblyResolutionError,
    ConfigurationError,
    ConfigValidationError,
    FilesystemError,
)
from .fileset import FileSet

logger = logging.getLogger(__name__)

PROJECT_SOURCES_DIR = "src"


def _artifact_item(params: ProjectParams) -> FileItemModel:
    if not params.artifact:
        raise AssemblyResolutionError(
            "Descriptor ref needs the project artifact, but 'project.artifact' is not configured"
        )
    return FileItemModel(source=params.artifact)


def _artifact_descriptor(params: ProjectParams) -> AssemblyDescriptor:
    return AssemblyDescriptor(id="artifact", files=[_artifact_item(params)])


def _project_descriptor(params: ProjectParams) -> AssemblyDescriptor:
    excludes = [f"/{d.strip('/')}/" for d in (params.build_dir, params.output_dir) if not Path(d).is_absolute()]
    return AssemblyDescriptor(
        id="project",
        file_sets=[FileSetModel(directory=".", excludes=excludes)],
    )


def _artifact_with_sources_descriptor(params: ProjectParams) -> AssemblyDescriptor:
    return AssemblyDescriptor(
        id="artifact-with-sources",
        files=[_artifact_item(params)],
        file_sets=[FileSetModel(directory=PROJECT_SOURCES_DIR, output_directory=PROJECT_SOURCES_DIR)],
    )


BUILTIN_DESCRIPTORS: Dict[str, Callable[[ProjectParams], AssemblyDescriptor]] = {
    "artifact": _artifact_descriptor,
    "project": _project_descriptor,
    "artifact-with-sources": _artifact_with_sources_descriptor,
}


def _dest(*parts: str) -> str:
    dest = posixpath.normpath(posixpath.join(*[p.replace("\\", "/") for p in parts if p]))
    if dest in (".", "..") or dest.startswith("../") or posixpath.isabs(dest):
        raise AssemblyResolutionError(f"Assembly destination '{dest}' leaves the assembly directory")
    return dest


class DescriptorResolver:
    """Resolves assemblies from descriptors, a pure function of its input"""

    def __init__(self, fs: FileSystem):
        self.fs = fs

    def resolve(self, source: AssemblySource) -> Assembly:
        descriptor = self._descriptor(source)
        params = source.params
        entries: List[AssemblyEntry] = []

        for fs_model in descriptor.file_sets:
            directory = params.resolve(fs_model.directory)
            if not self.fs.is_dir(directory):
                raise AssemblyResolutionError(f"File set directory '{directory}' does not exist")
            file_set = FileSet(
                directory=directory,
                prefix=fs_model.output_directory,
                includes=fs_model.includes,
                excludes=fs_model.excludes,
                use_default_excludes=fs_model.use_default_excludes,
            )
            try:
                selected = file_set.scan(self.fs)
            except FilesystemError as e:
                raise AssemblyResolutionError(f"Cannot scan file set '{directory}': {e}") from e
            for rel_path in selected:
                entries.append(AssemblyEntry(directory / rel_path, _dest(fs_model.output_directory, rel_path)))

        for item in descriptor.files:
            src = params.resolve(item.source)
            if not self.fs.is_file(src):
                raise AssemblyResolutionError(f"Assembly file '{src}' does not exist")
            entries.append(AssemblyEntry(src, _dest(item.output_directory, item.dest_name or src.name)))

        logger.debug(f"[Resolver] '{descriptor.id or 'inline'}' resolved to {len(entries)} entries for pass '{source.pass_id}'")
        return Assembly(id=source.pass_id, entries=entries)

    def _descriptor(self, source: AssemblySource) -> AssemblyDescriptor:
        config = source.assembly
        if config.inline is not None:
            return config.inline
        if config.descriptor is not None:
            return self._read_descriptor(source.params.resolve(Path(source.params.source_dir) / config.descriptor))
        if config.descriptor_ref is not None:
            factory = BUILTIN_DESCRIPTORS.get(config.descriptor_ref)
            if factory is None:
                known = ", ".join(sorted(BUILTIN_DESCRIPTORS))
                raise AssemblyResolutionError(f"Unknown descriptor ref '{config.descriptor_ref}' (known: {known})")
            return factory(source.params)
        raise ConfigurationError("Assembly has neither 'inline', 'descriptor' nor 'descriptor_ref'")

    def _read_descriptor(self, path: Path) -> AssemblyDescriptor:
        try:
            raw = yaml.safe_load(self.fs.read_text(path))
        except FilesystemError as e:
            raise AssemblyResolutionError(f"Error reading assembly descriptor '{path}': {e}") from e
        except yaml.YAMLError as e:
            raise AssemblyResolutionError(f"Error parsing assembly descriptor '{path}': {e}") from e

        descriptors = raw if isinstance(raw, list) else [raw] if raw else []
        if len(descriptors) != 1:
            raise ConfigurationError(
                f"Only one assembly can be used for creating a Docker base image (and not {len(descriptors)})"
            )
        try:
            return AssemblyDescriptor.model_validate(descriptors[0])
        except ValidationError as e:
            raise ConfigValidationError(f"Assembly descriptor '{path}' is invalid:\n{e}") from e
