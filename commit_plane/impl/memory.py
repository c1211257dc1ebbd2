import copy
import os
from pathlib import Path
from typing import Any

from commit_plane.base import BlobStore, RepoStore
from commit_plane.blob import StoredFile, canonical, fingerprint_of
from commit_plane.errors import BlobIOError, NotFoundError
from commit_plane.repository import RepoData, Repository

MemoryRepoData = dict[str, RepoData]
MemoryBlobData = dict[str, bytes]


class MemoryBlobStore(BlobStore):
    """
    Blob contents held in a dict; the working tree is still real files.

    Restored files get the blob's fingerprint as their modification time.
    """

    def __init__(self, data: MemoryBlobData | None = None) -> None:
        self.data = data if data is not None else {}

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("MemoryBlobStore(...)")
        else:
            p.text(f"MemoryBlobStore(blobs={sorted(self.data)})")

    def store(self, path: str | Path, stored_name: str) -> StoredFile:
        try:
            fingerprint = fingerprint_of(path)
            self.data[stored_name] = Path(path).read_bytes()
        except OSError as e:
            raise BlobIOError(f"Could not store {path}: {e}", [str(path)]) from e
        return StoredFile(str(path), canonical(path), stored_name, fingerprint)

    def _write(self, blob: StoredFile, target: str) -> None:
        content = self.data.get(blob.stored_name)
        if content is None:
            raise BlobIOError(
                f"Blob {blob.stored_name} is missing", [blob.absolute_path]
            )
        try:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            Path(target).write_bytes(content)
        except OSError as e:
            raise BlobIOError(
                f"Could not write {target}: {e}", [blob.absolute_path]
            ) from e

    def restore(self, blob: StoredFile) -> None:
        self._write(blob, blob.absolute_path)
        os.utime(blob.absolute_path, ns=(blob.fingerprint, blob.fingerprint))

    def restore_conflicted(self, blob: StoredFile) -> None:
        self._write(blob, blob.conflicted_path)

    def content(self, blob: StoredFile) -> bytes:
        try:
            return self.data[blob.stored_name]
        except KeyError:
            raise BlobIOError(f"Blob {blob.stored_name} is missing") from None


class MemoryRepoStore(RepoStore):
    """Keeps a copy of the dumped repository state in a shared dict."""

    def __init__(self, repo_data: MemoryRepoData, key: str = "repository") -> None:
        self.repo = repo_data
        self.key = key

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("MemoryRepoStore(...)")
        else:
            p.text(f"MemoryRepoStore(key='{self.key}', saved={self.exists()})")

    def exists(self) -> bool:
        return self.key in self.repo

    def load(self, blobs: BlobStore) -> Repository:
        if not self.exists():
            raise NotFoundError("No repository state has been saved")
        return Repository.load(copy.deepcopy(self.repo[self.key]), blobs)

    def save(self, repository: Repository) -> None:
        self.repo[self.key] = copy.deepcopy(repository.dump())


def create_memory_repo_store(repo: MemoryRepoData) -> MemoryRepoStore:
    return MemoryRepoStore(repo)
