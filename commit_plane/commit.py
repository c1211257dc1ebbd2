import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from commit_plane.base import BlobStore
from commit_plane.blob import StoredFile, canonical, fingerprint_of
from commit_plane.errors import (
    BlobIOError,
    ForbiddenError,
    NoChangesError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

Manifest = dict[str, StoredFile]
NameGenerator = Callable[[str], str]


def effective_view(
    inherited: Mapping[str, StoredFile],
    added: Mapping[str, StoredFile],
    removed: list[str],
) -> Manifest:
    """(inherited | added) - removed, with added entries replacing inherited ones."""
    view = dict(inherited)
    view.update(added)
    for path in removed:
        view.pop(path, None)
    return view


def modified_between(
    base: Mapping[str, StoredFile], other: Mapping[str, StoredFile]
) -> Manifest:
    """
    Paths tracked in both manifests whose fingerprints differ.

    The result maps each path to ``other``'s version. Paths present on only
    one side are not reported.
    """
    changed: Manifest = {}
    for path, blob in base.items():
        other_blob = other.get(path)
        if other_blob is not None and other_blob.fingerprint != blob.fingerprint:
            changed[path] = other_blob
    return changed


def ensure_modified(manifest: Mapping[str, StoredFile], path: str | Path) -> str:
    """
    Check that ``path`` exists and differs from its tracked version.

    Returns the manifest key of the path.
    """
    if not Path(path).is_file():
        raise NotFoundError("File does not exist.")

    key = canonical(path)
    tracked = manifest.get(key)
    if tracked is not None and fingerprint_of(path) == tracked.fingerprint:
        raise NoChangesError("File has not been modified since the last commit.")
    return key


def materialize(commits: Mapping[int, "Commit"], commit_id: int) -> Manifest:
    """Effective manifest of an indexed commit, as a fresh mapping."""
    commit = commits.get(commit_id)
    if commit is None:
        raise NotFoundError(f"No commit with id {commit_id} exists")
    return commit.effective()


class StagingArea:
    """
    Pending additions and removals of an in-progress commit.

    Both maps are keyed by absolute path and remember the path as the user
    typed it.
    """

    def __init__(self) -> None:
        self.to_add: dict[str, str] = {}
        self.to_remove: dict[str, str] = {}

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("StagingArea(...)")
        else:
            with p.group(4, "StagingArea(", ")"):
                p.breakable()
                p.text(f"to_add={list(self.to_add.values())},")
                p.breakable()
                p.text(f"to_remove={list(self.to_remove.values())},")
                p.breakable()

    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove

    def dump(self) -> dict[str, dict[str, str]]:
        return {"to_add": dict(self.to_add), "to_remove": dict(self.to_remove)}

    @classmethod
    def load(cls, data: dict[str, dict[str, str]]) -> "StagingArea":
        staging = cls()
        staging.to_add.update(data.get("to_add", {}))
        staging.to_remove.update(data.get("to_remove", {}))
        return staging


class Commit:
    """
    A manifest of tracked files at one point in history.

    ``inherited`` is the parent's effective view, copied when the commit is
    constructed; ``added`` and ``removed`` are this commit's own changes.
    The parent is referenced by id only, the repository's index owns it.
    While a commit is in progress it carries a staging area.
    """

    def __init__(
        self,
        commit_id: int,
        parent_id: int | None = None,
        message: str = "",
        timestamp: datetime | None = None,
        inherited: Manifest | None = None,
        added: Manifest | None = None,
        removed: list[str] | None = None,
    ) -> None:
        self.id = commit_id
        self.parent_id = parent_id
        self.message = message
        self.timestamp = timestamp or datetime.now()
        self.inherited: Manifest = inherited if inherited is not None else {}
        self.added: Manifest = added if added is not None else {}
        self.removed: list[str] = removed if removed is not None else []
        self.staging: StagingArea | None = None

    @classmethod
    def child_of(cls, parent: "Commit", commit_id: int) -> "Commit":
        """Start an in-progress commit on top of ``parent``."""
        commit = cls(commit_id, parent_id=parent.id, inherited=parent.effective())
        commit.staging = StagingArea()
        return commit

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("Commit(...)")
        else:
            with p.group(4, "Commit(", ")"):
                p.breakable()
                p.text(f"id={self.id},")
                p.breakable()
                p.text(f"parent_id={self.parent_id},")
                p.breakable()
                p.text(f"message={self.message!r},")
                p.breakable()
                p.text(f"files={sorted(self.effective())},")
                if self.staging is not None:
                    p.breakable()
                    p.text("staging=")
                    p.pretty(self.staging)
                p.breakable()

    @property
    def in_progress(self) -> bool:
        return self.staging is not None

    def effective(self) -> Manifest:
        return effective_view(self.inherited, self.added, self.removed)

    # Staging

    def _require_staging(self) -> StagingArea:
        if self.staging is None:
            raise ForbiddenError(f"Commit {self.id} is already finalized")
        return self.staging

    def stage_add(self, path: str | Path) -> None:
        staging = self._require_staging()
        key = ensure_modified(self.effective(), path)
        staging.to_add[key] = str(path)
        staging.to_remove.pop(key, None)

    def stage_remove(self, path: str | Path) -> None:
        staging = self._require_staging()
        key = canonical(path)
        if key in self.effective():
            staging.to_remove[key] = str(path)
        staging.to_add.pop(key, None)

    def finalize(
        self, message: str, blobs: BlobStore, names: NameGenerator
    ) -> list[str]:
        """
        Turn the staged changes into this commit's ``added``/``removed`` sets.

        Files that cannot be copied into blob storage are left out of the
        manifest and returned. Blobs already copied stay in storage even if a
        later file fails.
        """
        staging = self._require_staging()
        if staging.is_empty():
            raise NoChangesError("No changes added to the commit.")

        failed: list[str] = []
        for key, original in staging.to_add.items():
            try:
                blob = blobs.store(key, names(str(self.id)))
            except BlobIOError as e:
                logger.warning("Could not store %s: %s", original, e)
                failed.append(original)
                continue
            self.added[key] = replace(blob, original_path=original)

        for key in staging.to_remove:
            if key not in self.removed:
                self.removed.append(key)

        self.message = message
        self.timestamp = datetime.now()
        self.staging = None
        return failed

    # Working tree

    def checkout_all(self, blobs: BlobStore) -> list[str]:
        """Restore every tracked file; returns the paths that could not be restored."""
        failed: list[str] = []
        for path, blob in self.effective().items():
            try:
                blobs.restore(blob)
            except BlobIOError as e:
                logger.warning("Could not restore %s: %s", path, e)
                failed.append(path)
        return failed

    def checkout_one(self, path: str | Path, blobs: BlobStore) -> StoredFile:
        blob = self.effective().get(canonical(path))
        if blob is None:
            raise NotFoundError("File does not exist in that commit.")
        blobs.restore(blob)
        return blob

    # Graph

    def lineage(self, commits: Mapping[int, "Commit"]) -> Iterator["Commit"]:
        """This commit followed by its ancestors, nearest first."""
        commit: Commit | None = self
        while commit is not None:
            yield commit
            if commit.parent_id is None:
                break
            commit = commits.get(commit.parent_id)

    def ancestor_ids(self, commits: Mapping[int, "Commit"]) -> set[int]:
        return {commit.id for commit in self.lineage(commits)}

    def diff_against(self, other: "Commit") -> Manifest:
        return modified_between(self.effective(), other.effective())

    def replay(self, commit_id: int) -> "Commit":
        """Copy of this commit under a new id, with no parent yet."""
        return Commit(
            commit_id,
            parent_id=None,
            message=self.message,
            inherited=dict(self.inherited),
            added=dict(self.added),
            removed=list(self.removed),
        )

    # Manifest edits used by merge and rebase

    def splice(self, blob: StoredFile) -> None:
        """Track ``blob`` in this commit, replacing any entry for its path."""
        path = blob.absolute_path
        self.inherited[path] = blob
        self.added.pop(path, None)
        self.unremove(path)

    def unremove(self, path: str) -> None:
        if path in self.removed:
            self.removed.remove(path)

    def reinherit(self, parent: "Commit") -> None:
        """Re-base an in-progress commit onto a new parent."""
        self.parent_id = parent.id
        self.inherited = parent.effective()

    # Persistence

    def dump(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "inherited": [blob.dump() for blob in self.inherited.values()],
            "added": [blob.dump() for blob in self.added.values()],
            "removed": list(self.removed),
            "staging": self.staging.dump() if self.staging is not None else None,
        }

    @classmethod
    def load(cls, data: dict[str, Any]) -> "Commit":
        inherited = [StoredFile.load(item) for item in data["inherited"]]
        added = [StoredFile.load(item) for item in data["added"]]
        commit = cls(
            data["id"],
            parent_id=data["parent_id"],
            message=data["message"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            inherited={blob.absolute_path: blob for blob in inherited},
            added={blob.absolute_path: blob for blob in added},
            removed=list(data["removed"]),
        )
        if data.get("staging") is not None:
            commit.staging = StagingArea.load(data["staging"])
        return commit
