"""
Context Builder Builder Module

- AssemblyManager: Build context archives and changed-files archives
- ChangeTracker: Tracking passes and incremental archives
- RecipeBuilder: Dockerfile generation
- DescriptorResolver: Default assembly resolver
- TarArchiver, ZipArchiver: Deterministic archive writers
- FileSet, apply_ignore_rules: File selection and marker file filtering

Usage:
    from ctxbuilder.builder import AssemblyManager
    from ctxbuilder.io import create_fs

    fs = create_fs()
    config = Config("config.yml", fs)
    image = config.image("app")
    manager = AssemblyManager(fs)
    archive = manager.create_context_archive(image.name, config.project, image.build)
"""

from .manager import AssemblyManager, context_mode
from .tracker import ChangeTracker, MappingTrackArchiver
from .recipe import RecipeBuilder, Instruction
from .resolver import DescriptorResolver
from .archiver import TarArchiver, ZipArchiver
from .fileset import FileSet, apply_ignore_rules, match_pattern
from .layout import compute_and_create_dirs

__all__ = [
    'AssemblyManager',
    'context_mode',
    'ChangeTracker',
    'MappingTrackArchiver',
    'RecipeBuilder',
    'Instruction',
    'DescriptorResolver',
    'TarArchiver',
    'ZipArchiver',
    'FileSet',
    'apply_ignore_rules',
    'match_pattern',
    'compute_and_create_dirs',
]
