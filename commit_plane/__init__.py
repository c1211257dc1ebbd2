from .base import BlobStore, RepoStore
from .blob import StoredFile
from .branch import Branch
from .commit import Commit, materialize
from .errors import (
    AlreadyExistsError,
    AlreadyUpToDateError,
    BlobIOError,
    ForbiddenError,
    NoChangesError,
    NotFoundError,
    PlaneError,
    SelfOperationError,
)
from .rebase import ReplayAction, ReplayDecision, ScriptedDecisions, ConsoleDecisions
from .repository import (
    Repository,
    CheckoutResult,
    MergeResult,
    RebaseResult,
    RepoStatus,
)
from .impl.memory import create_memory_repo_store
from .impl.filesystem import (
    create_file_repository,
    open_file_repository,
    file_repository,
)

__all__ = [
    "BlobStore",
    "RepoStore",
    "StoredFile",
    "Branch",
    "Commit",
    "materialize",
    "PlaneError",
    "NotFoundError",
    "AlreadyExistsError",
    "NoChangesError",
    "AlreadyUpToDateError",
    "SelfOperationError",
    "ForbiddenError",
    "BlobIOError",
    "ReplayAction",
    "ReplayDecision",
    "ScriptedDecisions",
    "ConsoleDecisions",
    "Repository",
    "CheckoutResult",
    "MergeResult",
    "RebaseResult",
    "RepoStatus",
    "create_memory_repo_store",
    "create_file_repository",
    "open_file_repository",
    "file_repository",
]
