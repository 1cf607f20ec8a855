"""
File sets and the ignore/include filter of recipe directories.

Patterns use Ant wildcards with .gitignore-like anchoring: unlike Ant, a
bare name is not tied to the root. They are always matched against POSIX
paths relative to the file set directory:

- `**` matches any number of path segments
- `*` and `?` match within one segment
- a trailing `/` means the directory and everything below it
- a pattern without `/` matches the file name at any depth
- a leading `/` anchors the pattern at the file set root
- a pattern naming a directory also covers everything below it
"""
import re
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List

from .. import constants
from ..io.fs import FileSystem

logger = logging.getLogger(__name__)

MARKER_FILES = (constants.DOCKER_EXCLUDE, constants.DOCKER_IGNORE, constants.DOCKER_INCLUDE)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern:
    pattern = pattern.strip().replace("\\", "/")
    if pattern.endswith("/"):
        pattern += "**"
    # a leading / anchors the pattern at the file set root
    anchored = pattern.startswith("/")
    pattern = pattern.lstrip("/")
    if not anchored and "/" not in pattern:
        pattern = "**/" + pattern

    segments = pattern.split("/")
    regex = ""
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        if seg == "**":
            regex += ".*" if last else "(?:.*/)?"
            continue
        for ch in seg:
            if ch == "*":
                regex += "[^/]*"
            elif ch == "?":
                regex += "[^/]"
            else:
                regex += re.escape(ch)
        if not last:
            regex += "/"
    # a matched directory covers its subtree
    return re.compile(regex + r"(?:/.*)?\Z")


def match_pattern(path: str, pattern: str) -> bool:
    """Check a relative POSIX path against one pattern, see the module docstring"""
    if not pattern.strip():
        return False
    return _compile(pattern).match(path.replace("\\", "/")) is not None


def match_any(path: str, patterns: List[str]) -> bool:
    return any(match_pattern(path, p) for p in patterns)


def read_patterns(path: Path, fs: FileSystem) -> List[str]:
    """Read a marker file, one pattern per line, blank lines and # comments skipped"""
    patterns = []
    for line in fs.read_lines(path):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(line)
    return patterns


@dataclass
class FileSet:
    """
    A directory whose files go into an archive below `prefix`.

    With `includes` only matching files are taken; `excludes` are then
    removed from that selection. Default excludes drop VCS metadata and
    editor droppings.
    """
    directory: Path
    prefix: str = ""
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    use_default_excludes: bool = True

    def is_selected(self, rel_path: str) -> bool:
        if self.includes and not match_any(rel_path, self.includes):
            return False
        if match_any(rel_path, self.excludes):
            return False
        if self.use_default_excludes and match_any(rel_path, constants.DEFAULT_EXCLUDES):
            return False
        return True

    def scan(self, fs: FileSystem) -> List[str]:
        """Selected regular files as sorted POSIX paths relative to `directory`"""
        selected = []
        for rel_path in fs.find(self.directory):
            if self.is_selected(rel_path):
                selected.append(rel_path)
            else:
                logger.debug(f"[FileSet] Skipping {rel_path}")
        return selected


def apply_ignore_rules(file_set: FileSet, fs: FileSystem) -> FileSet:
    """
    Apply the marker files found in the file set directory.

    `.maven-dockerexclude` and the legacy `.maven-dockerignore` add exclude
    patterns; `.maven-dockerinclude` turns its patterns into an exclusive
    allow-list that exclude patterns do not further narrow. The marker files
    themselves never end up in the archive. Without any marker file the file
    set is left alone.
    """
    directory = file_set.directory
    present = [m for m in MARKER_FILES if fs.is_file(directory / m)]
    if not present:
        logger.debug(f"[FileSet] No marker files in {directory}, no filtering")
        return file_set

    excludes = list(file_set.excludes)
    for marker in (constants.DOCKER_EXCLUDE, constants.DOCKER_IGNORE):
        if marker in present:
            patterns = read_patterns(directory / marker, fs)
            logger.debug(f"[FileSet] {marker}: excluding {patterns}")
            excludes.extend(patterns)
            excludes.append(constants.DOCKER_IGNORE)

    if constants.DOCKER_INCLUDE in present:
        includes = read_patterns(directory / constants.DOCKER_INCLUDE, fs)
        logger.debug(f"[FileSet] {constants.DOCKER_INCLUDE}: including only {includes}")
        file_set.includes = includes
        excludes = []

    # markers never leak, whatever the patterns say
    file_set.excludes = excludes + [f"/{m}" for m in MARKER_FILES]
    return file_set
