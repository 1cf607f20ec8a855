import tarfile
from pathlib import Path

import pytest

from ctxbuilder.config import ProjectParams
from ctxbuilder.io import DiskFileSystem


@pytest.fixture
def fs():
    return DiskFileSystem()


@pytest.fixture
def project(tmp_path: Path) -> ProjectParams:
    base = tmp_path / "project"
    base.mkdir()
    return ProjectParams(base_dir=base)


@pytest.fixture
def make_file():
    """Create a file with content and optional permission bits."""
    def _make(path: Path, content: str = "x", mode: int = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        if mode is not None:
            path.chmod(mode)
        return path
    return _make


@pytest.fixture
def tar_contents():
    """Regular files of a tar archive as {name: (mode, data)}."""
    def _read(archive: Path) -> dict:
        with tarfile.open(archive, "r:*") as tar:
            return {
                m.name: (m.mode, tar.extractfile(m).read())
                for m in tar.getmembers()
                if m.isfile()
            }
    return _read
