from pathlib import Path
from typing import TYPE_CHECKING

from commit_plane.blob import StoredFile

if TYPE_CHECKING:
    from commit_plane.repository import Repository


class BlobStore:
    """
    Repository-internal storage for committed file contents.

    Every stored blob gets a unique name chosen by the caller; the store only
    moves bytes between the working tree and its own location.
    """

    def store(self, path: str | Path, stored_name: str) -> StoredFile:
        """Copy the current content of ``path`` under ``stored_name``."""
        raise NotImplementedError()

    def restore(self, blob: StoredFile) -> None:
        """Overwrite the working-tree file with the stored content."""
        raise NotImplementedError()

    def restore_conflicted(self, blob: StoredFile) -> None:
        """Write the stored content next to the original as ``<path>.conflicted``."""
        raise NotImplementedError()

    def content(self, blob: StoredFile) -> bytes:
        """Read the stored bytes of a blob."""
        raise NotImplementedError()


class RepoStore:
    """
    Whole-state persistence of a Repository.

    The engine is loaded wholesale, mutated in memory and saved wholesale
    after each top-level operation.
    """

    def exists(self) -> bool:
        """Check whether a repository state has been saved."""
        raise NotImplementedError()

    def load(self, blobs: BlobStore) -> "Repository":
        """Rebuild the repository, attaching the given blob store."""
        raise NotImplementedError()

    def save(self, repository: "Repository") -> None:
        """Replace the persisted state with the repository's current state."""
        raise NotImplementedError()
