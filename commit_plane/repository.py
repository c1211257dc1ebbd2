import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from commit_plane.base import BlobStore
from commit_plane.blob import StoredFile
from commit_plane.branch import Branch
from commit_plane.commit import Commit, Manifest, materialize, modified_between
from commit_plane.constants import DEFAULT_BRANCH, INITIAL_MESSAGE, MAX_SKIP_REFUSALS
from commit_plane.context import GraphContext, IdAllocator
from commit_plane.errors import (
    AlreadyExistsError,
    AlreadyUpToDateError,
    BlobIOError,
    ForbiddenError,
    NotFoundError,
    SelfOperationError,
)
from commit_plane.rebase import (
    CONTINUE,
    DecisionProvider,
    RebaseState,
    ReplayAction,
    ReplayDecision,
    continue_all,
)

logger = logging.getLogger(__name__)

RepoData = dict[str, Any]


class CheckoutResult(enum.Enum):
    BRANCH = "branch"
    FILE = "file"
    ALREADY_CURRENT = "already-current"


@dataclass
class CommitResult:
    commit: Commit
    failed: list[str] = field(default_factory=list)


@dataclass
class RepoStatus:
    current: str
    branches: list[str]
    staged: list[str]
    marked_for_removal: list[str]


@dataclass
class MergeResult:
    copied: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class RebaseResult:
    state: RebaseState
    replayed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class Repository:
    """
    The commit graph: branches, the commit indices and the algorithms that
    move heads around (checkout, reset, merge, rebase).

    Commit ids and blob names come from counters owned by this instance and
    are never reused. Only finalized commits are indexed; in-progress commits
    live on their branch until committed.
    """

    def __init__(
        self,
        ctx: GraphContext,
        branches: list[Branch],
        current: Branch,
    ) -> None:
        self.ctx = ctx
        self.branches = branches
        self.current = current
        self.by_message: dict[str, list[int]] = {}

    @classmethod
    def create(cls, blobs: BlobStore) -> "Repository":
        ctx = GraphContext(IdAllocator(), blobs)
        initial = Commit(ctx.ids.next_commit_id(), message=INITIAL_MESSAGE)
        master = Branch(DEFAULT_BRANCH, initial)
        repo = cls(ctx, [master], master)
        repo._record(initial)
        return repo

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("Repository(...)")
        else:
            with p.group(4, "Repository(", ")"):
                p.breakable()
                p.text(f"current='{self.current.name}',")
                p.breakable()
                p.text("branches=")
                p.pretty(self.branches)
                p.text(",")
                p.breakable()
                p.text(f"commits={list(self.ctx.commits)},")
                p.breakable()

    @property
    def commits(self) -> dict[int, Commit]:
        return self.ctx.commits

    @property
    def blobs(self) -> BlobStore:
        return self.ctx.blobs

    def _record(self, commit: Commit) -> None:
        self.ctx.commits[commit.id] = commit
        self.by_message.setdefault(commit.message, []).append(commit.id)

    def _find_branch(self, name: str) -> Branch | None:
        for branch in self.branches:
            if branch.name == name:
                return branch
        return None

    def branch(self, name: str) -> Branch:
        branch = self._find_branch(name)
        if branch is None:
            raise NotFoundError("A branch with that name does not exist.")
        return branch

    def manifest(self, commit_id: int) -> Manifest:
        return materialize(self.ctx.commits, commit_id)

    # Staging and history

    def add(self, path: str | Path) -> None:
        self.current.add(path, self.ctx)

    def remove(self, path: str | Path) -> None:
        self.current.remove(path, self.ctx)

    def commit(self, message: str) -> CommitResult:
        commit, failed = self.current.commit(message, self.ctx)
        self._record(commit)
        logger.info(
            "Recorded commit %d on '%s': %s", commit.id, self.current.name, message
        )
        return CommitResult(commit, failed)

    def log(self) -> list[Commit]:
        return self.current.history(self.ctx)

    def global_log(self) -> list[Commit]:
        return list(self.ctx.commits.values())

    def find(self, message: str) -> list[int]:
        ids = self.by_message.get(message)
        if not ids:
            raise NotFoundError("Found no commit with that message.")
        return list(ids)

    def status(self) -> RepoStatus:
        return RepoStatus(
            current=self.current.name,
            branches=[branch.name for branch in self.branches],
            staged=self.current.staged(),
            marked_for_removal=self.current.marked_for_removal(),
        )

    # Branches

    def add_branch(self, name: str) -> Branch:
        if self._find_branch(name) is not None:
            raise AlreadyExistsError("A branch with that name already exists.")
        branch = Branch(name, self.current.head)
        self.branches.append(branch)
        return branch

    def remove_branch(self, name: str) -> None:
        if name == self.current.name:
            raise ForbiddenError("Cannot remove the current branch.")
        self.branches.remove(self.branch(name))

    # Working tree

    def checkout(self, name: str) -> CheckoutResult:
        """
        Switch to branch ``name``, or restore file ``name`` from the current
        head when no such branch exists.
        """
        if name == self.current.name:
            logger.info("No need to checkout the current branch.")
            return CheckoutResult.ALREADY_CURRENT

        branch = self._find_branch(name)
        if branch is not None:
            failed = branch.checkout(self.ctx)
            if failed:
                raise BlobIOError(f"Could not checkout branch '{name}'", failed)
            self.current = branch
            logger.info("Switched to branch '%s'", name)
            return CheckoutResult.BRANCH

        try:
            self.current.checkout_file(name, self.ctx)
        except NotFoundError:
            raise NotFoundError(
                "File does not exist in the most recent commit, "
                "or no such branch exists."
            ) from None
        return CheckoutResult.FILE

    def checkout_file(self, commit_id: int, path: str | Path) -> StoredFile:
        return self.ctx.get(commit_id).checkout_one(path, self.ctx.blobs)

    def reset(self, commit_id: int) -> list[str]:
        """
        Force the current head to any indexed commit and restore its files.

        No ancestry check is made: the commit may belong to another branch's
        history.
        """
        commit = self.ctx.get(commit_id)
        self.current.rehome(commit)
        logger.info("Reset '%s' to commit %d", self.current.name, commit_id)
        return self.current.checkout(self.ctx)

    # Merge and rebase

    def _diverged(self, base: Branch, other: Branch) -> tuple[list[Commit], Commit]:
        """
        Walk ``other``'s history back to the first commit ``base`` also has.

        Returns the commits of ``other`` missing from ``base``'s history,
        nearest first, and that shared commit.
        """
        base_history = base.head.ancestor_ids(self.ctx.commits)
        own: list[Commit] = []
        for commit in other.head.lineage(self.ctx.commits):
            if commit.id in base_history:
                return own, commit
            own.append(commit)
        raise NotFoundError(
            f"Branches '{base.name}' and '{other.name}' share no history"
        )

    def _common_ancestor(self, first: Branch, second: Branch) -> Commit:
        return self._diverged(first, second)[1]

    def merge(self, name: str) -> MergeResult:
        """
        Bring changes of branch ``name`` into the current head.

        Files missing from the current branch and files changed only on the
        given branch are copied in. Files changed on both sides since the
        common ancestor are written as ``<path>.conflicted`` with the given
        branch's content; the current version stays tracked.
        """
        if name == self.current.name:
            raise SelfOperationError("Cannot merge a branch with itself.")
        given = self.branch(name)
        current = self.current
        head = current.head

        given_view = self.manifest(given.head.id)
        current_view = self.manifest(head.id)
        ancestor = self._common_ancestor(given, current)
        ancestor_view = self.manifest(ancestor.id)

        modified_in_given = modified_between(ancestor_view, given_view)
        modified_in_current = modified_between(ancestor_view, current_view)

        result = MergeResult()
        for path, blob in given_view.items():
            if path not in current_view:
                head.splice(blob)
                result.copied.append(path)

        for path, blob in modified_in_given.items():
            ours = modified_in_current.get(path)
            if ours is None:
                head.splice(blob)
                if path not in result.copied:
                    result.copied.append(path)
            elif ours.fingerprint != blob.fingerprint:
                result.conflicts.append(path)
                try:
                    self.ctx.blobs.restore_conflicted(blob)
                except BlobIOError as e:
                    logger.warning("Could not write conflict copy of %s: %s", path, e)
                    result.failed.append(path)

        current.rehome(head)
        result.failed.extend(given.checkout(self.ctx))
        result.failed.extend(current.checkout(self.ctx))
        logger.info(
            "Merged '%s' into '%s': %d copied, %d conflicted",
            name,
            current.name,
            len(result.copied),
            len(result.conflicts),
        )
        return result

    def _propagation_set(
        self, ancestor: Commit, target: Commit, current: Commit
    ) -> list[StoredFile]:
        """Changes on the target side that replayed commits must carry forward."""
        ancestor_view = self.manifest(ancestor.id)
        target_view = self.manifest(target.id)
        current_view = self.manifest(current.id)

        modified_in_target = modified_between(ancestor_view, target_view)
        modified_in_current = modified_between(ancestor_view, current_view)

        carried = {
            path: blob
            for path, blob in modified_in_target.items()
            if path not in modified_in_current
        }
        for path, blob in target_view.items():
            if path not in ancestor_view:
                carried[path] = blob
        return list(carried.values())

    def _decide(
        self, decide: DecisionProvider, commit: Commit, can_skip: bool
    ) -> ReplayDecision:
        for _ in range(MAX_SKIP_REFUSALS + 1):
            decision = decide(commit, can_skip)
            if decision.action is not ReplayAction.SKIP or can_skip:
                return decision
            logger.info("Commit %d cannot be skipped", commit.id)
        raise ForbiddenError(f"Commit {commit.id} cannot be skipped.")

    def rebase(
        self,
        name: str,
        interactive: bool = False,
        decide: DecisionProvider | None = None,
    ) -> RebaseResult:
        """
        Replay the current branch's own commits on top of branch ``name``.

        When interactive, ``decide`` is asked for every commit whether to
        continue, skip it or change its message. The first and the last
        commit replayed can never be skipped.
        """
        if name == self.current.name:
            raise SelfOperationError("Cannot rebase a branch onto itself.")
        target = self.branch(name)
        current = self.current
        state = RebaseState.INIT

        if target.in_history(current, self.ctx):
            current.rehome(target.head)
            logger.info(
                "Fast-forwarded '%s' to commit %d", current.name, target.head.id
            )
            return RebaseResult(
                RebaseState.FAST_FORWARD, failed=current.checkout(self.ctx)
            )
        if current.in_history(target, self.ctx):
            state = RebaseState.ALREADY_UP_TO_DATE
            logger.debug(
                "Rebase of '%s' onto '%s' stopped: %s", current.name, name, state.value
            )
            raise AlreadyUpToDateError("Already up-to-date.")

        state = RebaseState.SCANNING
        logger.debug("Rebase of '%s' onto '%s': %s", current.name, name, state.value)
        stack, ancestor = self._diverged(target, current)
        carried = self._propagation_set(ancestor, target.head, current.head)

        # Decisions are collected before anything is mutated
        decide = decide or continue_all
        plan: list[tuple[Commit, ReplayDecision]] = []
        total = len(stack)
        while stack:
            commit = stack.pop()
            decision = CONTINUE
            if interactive:
                can_skip = 0 < len(plan) < total - 1
                decision = self._decide(decide, commit, can_skip)
            plan.append((commit, decision))

        state = RebaseState.REPLAYING
        logger.debug("Rebase of '%s' onto '%s': %s", current.name, name, state.value)
        result = RebaseResult(RebaseState.DONE)
        current.rehome(target.head)
        for commit, decision in plan:
            if decision.action is ReplayAction.SKIP:
                result.skipped.append(commit.id)
                continue
            replayed = commit.replay(self.ctx.ids.next_commit_id())
            if decision.action is ReplayAction.REWORD and decision.message is not None:
                replayed.message = decision.message
            replayed.inherited.update({blob.absolute_path: blob for blob in carried})
            replayed.parent_id = current.head.id
            current.rehome(replayed)
            self._record(replayed)
            result.replayed.append(replayed.id)

        result.failed = current.checkout(self.ctx)
        logger.info(
            "Rebased '%s' onto '%s': %d replayed, %d skipped",
            current.name,
            target.name,
            len(result.replayed),
            len(result.skipped),
        )
        return result

    # Persistence

    def dump(self) -> RepoData:
        return {
            "last_commit_id": self.ctx.ids.last_commit_id,
            "last_blob_no": self.ctx.ids.last_blob_no,
            "current": self.current.name,
            "commits": [commit.dump() for commit in self.ctx.commits.values()],
            "branches": [
                {
                    "name": branch.name,
                    "head": branch.head.id,
                    "in_progress": (
                        branch.in_progress.dump()
                        if branch.in_progress is not None
                        else None
                    ),
                }
                for branch in self.branches
            ],
        }

    @classmethod
    def load(cls, data: RepoData, blobs: BlobStore) -> "Repository":
        ids = IdAllocator(data["last_commit_id"], data["last_blob_no"])
        ctx = GraphContext(ids, blobs)
        commits = [Commit.load(item) for item in data["commits"]]
        for commit in commits:
            ctx.commits[commit.id] = commit

        branches = []
        for item in data["branches"]:
            in_progress = None
            if item["in_progress"] is not None:
                in_progress = Commit.load(item["in_progress"])
            branches.append(Branch(item["name"], ctx.get(item["head"]), in_progress))

        current = next(branch for branch in branches if branch.name == data["current"])
        repo = cls(ctx, branches, current)
        for commit in commits:
            repo.by_message.setdefault(commit.message, []).append(commit.id)
        return repo
