"""
ctxbuilder - Build-Context Assembler and Change Tracker

Materializes the build context of a container image: resolves an assembly,
filters recipe directories through marker files, generates a Dockerfile and
packs everything into a deterministic tar archive. A change tracker records
where every assembly file came from so that later only changed files need to
be packed.

Main modules:
- builder: Layout, filtering, recipes, archives and change tracking
- config: Configuration loading and validation
- preprocess: Config includes and image comprehensions
- datacls: Data classes shared between the modules
- io: File system handling
- utils: Logging and typing helpers

Quick start example:
```python
from ctxbuilder import AssemblyManager, Config, create_fs

fs = create_fs()
config = Config("ctxb.yml", fs)
manager = AssemblyManager(fs)
for image in config.images:
    manager.create_context_archive(image.name, config.project, image.build)
```
"""

__version__ = "0.3.0"

from .protocols import AssemblyResolverProtocol
from .config import Config, ConfigModel
from .builder import AssemblyManager, ChangeTracker, RecipeBuilder, DescriptorResolver
from .io import FileSystem, create_fs
from .exceptions import (
    CtxBuilderError,
    ConfigurationError,
    ConfigValidationError,
    AssemblyResolutionError,
    FilesystemError,
    ArchiveError,
)

__all__ = [
    # Version
    '__version__',
    # Protocols
    'AssemblyResolverProtocol',
    # Config
    'Config',
    'ConfigModel',
    # Builder
    'AssemblyManager',
    'ChangeTracker',
    'RecipeBuilder',
    'DescriptorResolver',
    # IO
    'FileSystem',
    'create_fs',
    # Exceptions
    'CtxBuilderError',
    'ConfigurationError',
    'ConfigValidationError',
    'AssemblyResolutionError',
    'FilesystemError',
    'ArchiveError',
]
