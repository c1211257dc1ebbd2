from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from commit_plane.base import BlobStore
from commit_plane.constants import BLOB_NAME_PREFIX
from commit_plane.errors import NotFoundError

if TYPE_CHECKING:
    from commit_plane.commit import Commit


@dataclass
class IdAllocator:
    """Monotonic counters for commit ids and stored blob names."""

    last_commit_id: int = 0
    last_blob_no: int = 0

    def next_commit_id(self) -> int:
        self.last_commit_id += 1
        return self.last_commit_id

    def unique_name(self, hint: str) -> str:
        self.last_blob_no += 1
        return f"{BLOB_NAME_PREFIX}{self.last_blob_no}.{hint}"


@dataclass
class GraphContext:
    """
    Everything a Branch or Commit needs from its repository: id allocation,
    the commit-id index and the blob store.
    """

    ids: IdAllocator
    blobs: BlobStore
    commits: dict[int, "Commit"] = field(default_factory=dict)

    def get(self, commit_id: int) -> "Commit":
        try:
            return self.commits[commit_id]
        except KeyError:
            raise NotFoundError(f"No commit with id {commit_id} exists") from None
