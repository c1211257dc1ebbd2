class PlaneError(Exception):
    """Base class for every failure reported by the commit graph engine."""


class NotFoundError(PlaneError):
    """A branch, commit id or tracked path does not exist."""


class AlreadyExistsError(PlaneError):
    """A branch (or repository) with that name already exists."""


class NoChangesError(PlaneError):
    """Nothing is staged, or the file is unchanged since the last commit."""


class AlreadyUpToDateError(PlaneError):
    """The current branch already contains the target branch's history."""


class SelfOperationError(PlaneError):
    """Merge or rebase of a branch with itself."""


class ForbiddenError(PlaneError):
    """The operation is not allowed in the current state."""


class BlobIOError(PlaneError):
    """Copying content into or out of blob storage failed."""

    def __init__(self, message: str, paths: list[str] | None = None) -> None:
        super().__init__(message)
        self.paths = paths or []
