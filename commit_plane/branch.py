import logging
from pathlib import Path
from typing import Any

from commit_plane.blob import StoredFile
from commit_plane.commit import Commit, ensure_modified
from commit_plane.context import GraphContext
from commit_plane.errors import NoChangesError

logger = logging.getLogger(__name__)


class Branch:
    """
    A named pointer to a head commit.

    A branch owns at most one in-progress commit which acts as its staging
    area. Operations that need ids, the commit index or blob storage take
    them explicitly through a ``GraphContext``.
    """

    def __init__(
        self, name: str, head: Commit, in_progress: Commit | None = None
    ) -> None:
        self.name = name
        self.head = head
        self.in_progress = in_progress

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("Branch(...)")
        else:
            with p.group(4, "Branch(", ")"):
                p.breakable()
                p.text(f"name='{self.name}',")
                p.breakable()
                p.text(f"head={self.head.id},")
                if self.in_progress is not None:
                    p.breakable()
                    p.text("in_progress=")
                    p.pretty(self.in_progress)
                p.breakable()

    def _start_commit(self, ctx: GraphContext) -> Commit:
        if self.in_progress is None:
            self.in_progress = Commit.child_of(self.head, ctx.ids.next_commit_id())
        return self.in_progress

    def add(self, path: str | Path, ctx: GraphContext) -> None:
        if self.in_progress is None:
            # fail before spending a commit id on the staging commit
            ensure_modified(self.head.effective(), path)
        self._start_commit(ctx).stage_add(path)

    def remove(self, path: str | Path, ctx: GraphContext) -> None:
        self._start_commit(ctx).stage_remove(path)

    def commit(self, message: str, ctx: GraphContext) -> tuple[Commit, list[str]]:
        """
        Finalize the staging commit and advance the head to it.

        Returns the new head and the paths that could not be stored. The
        caller records the commit in the repository's indices.
        """
        if self.in_progress is None:
            raise NoChangesError("No changes added to the commit.")

        commit = self.in_progress
        failed = commit.finalize(message, ctx.blobs, ctx.ids.unique_name)
        self.head = commit
        self.in_progress = None
        logger.debug("Branch '%s' advanced to commit %d", self.name, commit.id)
        return commit, failed

    def checkout(self, ctx: GraphContext) -> list[str]:
        return self.head.checkout_all(ctx.blobs)

    def checkout_file(self, path: str | Path, ctx: GraphContext) -> StoredFile:
        return self.head.checkout_one(path, ctx.blobs)

    def rehome(self, commit: Commit) -> None:
        """Point the head at ``commit``; staged work moves along with it."""
        self.head = commit
        if self.in_progress is not None:
            self.in_progress.reinherit(commit)

    def in_history(self, other: "Branch", ctx: GraphContext) -> bool:
        """
        Check whether ``other``'s head is a strict ancestor of this head.

        The head itself is never compared, so two branches sharing a head are
        not in each other's history.
        """
        target = other.head.id
        lineage = self.head.lineage(ctx.commits)
        next(lineage)
        return any(commit.id == target for commit in lineage)

    def history(self, ctx: GraphContext) -> list[Commit]:
        return list(self.head.lineage(ctx.commits))

    def staged(self) -> list[str]:
        if self.in_progress is None or self.in_progress.staging is None:
            return []
        return list(self.in_progress.staging.to_add.values())

    def marked_for_removal(self) -> list[str]:
        if self.in_progress is None or self.in_progress.staging is None:
            return []
        return list(self.in_progress.staging.to_remove.values())
