import os
from pathlib import Path

import pytest

from commit_plane.impl.filesystem import FileBlobStore
from commit_plane.repository import Repository


class FileWriter:
    """
    Writes working-tree files with explicit, strictly increasing
    modification times so fingerprints never collide by accident.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.clock = 1_600_000_000 * 10**9

    def __call__(self, name: str, content: str) -> Path:
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        self.clock += 10**9
        os.utime(path, ns=(self.clock, self.clock))
        return path


@pytest.fixture
def work(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    monkeypatch.chdir(work_dir)
    return work_dir


@pytest.fixture
def write(work: Path) -> FileWriter:
    return FileWriter(work)


@pytest.fixture
def repo(work: Path) -> Repository:
    return Repository.create(FileBlobStore(work / ".plane" / "blobs"))
