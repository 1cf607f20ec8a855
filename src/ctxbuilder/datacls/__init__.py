"""
Context Builder Data Classes

- BuildDirs: per-image build directories
- Assembly, AssemblyEntry, AssemblySource: resolved assemblies and resolver input
- TrackedEntry, TrackedFileSet: source to destination mapping of a tracking pass
"""

from .dirs import BuildDirs
from .assembly import Assembly, AssemblyEntry, AssemblySource
from .tracking import TrackedEntry, TrackedFileSet

__all__ = [
    'BuildDirs',
    'Assembly',
    'AssemblyEntry',
    'AssemblySource',
    'TrackedEntry',
    'TrackedFileSet',
]
