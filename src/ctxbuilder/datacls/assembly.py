from typing import List, NamedTuple, Tuple
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import AssemblyModel, BuildImageModel, ProjectParams
from .dirs import BuildDirs


class AssemblyEntry(NamedTuple):
    source: Path
    dest: str


class Assembly(BaseModel):
    """
        Class represents a resolved assembly: ordered (source, dest) pairs
        plus the id of the pass that produced it.
        `dest` is relative and POSIX style.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    entries: Tuple[AssemblyEntry, ...] = Field(default_factory=tuple)

    @field_validator("entries", mode="before")
    @classmethod
    def coerce_entries(cls, value):
        return tuple(AssemblyEntry(Path(s), str(d)) for s, d in value)

    @field_validator("entries")
    @classmethod
    def check_relative_dest(cls, value):
        for entry in value:
            dest = PurePosixPath(entry.dest)
            if dest.is_absolute() or ".." in dest.parts or not entry.dest:
                raise ValueError(f"Assembly destination must be relative and stay inside the assembly, got '{entry.dest}'")
        return value

    @property
    def dests(self) -> List[str]:
        return [e.dest for e in self.entries]


class AssemblySource(BaseModel):
    """
        Everything an assembly resolver gets to see for one pass.
        Both passes of a build cycle get identical inputs apart from `pass_id`.
    """
    model_config = ConfigDict(frozen=True)

    pass_id: str
    params: ProjectParams
    build_dirs: BuildDirs
    assembly: AssemblyModel
    build: BuildImageModel
