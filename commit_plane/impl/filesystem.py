import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from commit_plane.base import BlobStore
from commit_plane.blob import StoredFile, canonical, fingerprint_of
from commit_plane.constants import BLOBS_SUBDIR, REPO_DIR, STATE_FILE
from commit_plane.errors import AlreadyExistsError, BlobIOError, NotFoundError
from commit_plane.impl.sql import SqlRepoStore, create_sql_repo_store
from commit_plane.repository import Repository

logger = logging.getLogger(__name__)


class FileBlobStore(BlobStore):
    """
    Blobs kept as plain files in one directory.

    Copies keep the source's modification time, so a restored file has the
    fingerprint of the blob it came from.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("FileBlobStore(...)")
        else:
            p.text(f"FileBlobStore(root={self.root})")

    def store(self, path: str | Path, stored_name: str) -> StoredFile:
        source = Path(path)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fingerprint = fingerprint_of(source)
            shutil.copy2(source, self.root / stored_name)
        except OSError as e:
            raise BlobIOError(f"Could not store {path}: {e}", [str(path)]) from e
        return StoredFile(str(path), canonical(path), stored_name, fingerprint)

    def restore(self, blob: StoredFile) -> None:
        target = Path(blob.absolute_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.root / blob.stored_name, target)
        except OSError as e:
            raise BlobIOError(
                f"Could not restore {blob.original_path}: {e}", [blob.absolute_path]
            ) from e

    def restore_conflicted(self, blob: StoredFile) -> None:
        try:
            shutil.copyfile(self.root / blob.stored_name, blob.conflicted_path)
        except OSError as e:
            raise BlobIOError(
                f"Could not write {blob.conflicted_path}: {e}", [blob.absolute_path]
            ) from e

    def content(self, blob: StoredFile) -> bytes:
        try:
            return (self.root / blob.stored_name).read_bytes()
        except OSError as e:
            raise BlobIOError(f"Could not read blob {blob.stored_name}: {e}") from e


def _layout(work_dir: str | Path, repo_dir: str) -> tuple[Path, Path, str]:
    root = Path(work_dir).absolute() / repo_dir
    return root, root / BLOBS_SUBDIR, f"sqlite:///{root / STATE_FILE}"


def create_file_repository(
    work_dir: str | Path, repo_dir: str = REPO_DIR
) -> tuple[Repository, SqlRepoStore]:
    """Initialise a repository in ``work_dir`` with its initial commit saved."""
    root, blobs_dir, db_url = _layout(work_dir, repo_dir)
    if root.exists():
        raise AlreadyExistsError(
            "A version control system already exists in the current directory."
        )
    blobs_dir.mkdir(parents=True)

    store = create_sql_repo_store(db_url)
    repo = Repository.create(FileBlobStore(blobs_dir))
    store.save(repo)
    logger.info("Initialized empty repository in %s", root)
    return repo, store


def open_file_repository(
    work_dir: str | Path, repo_dir: str = REPO_DIR
) -> tuple[Repository, SqlRepoStore]:
    root, blobs_dir, db_url = _layout(work_dir, repo_dir)
    if not root.is_dir():
        raise NotFoundError(f"No repository found in {Path(work_dir).absolute()}")

    store = create_sql_repo_store(db_url)
    return store.load(FileBlobStore(blobs_dir)), store


@contextmanager
def file_repository(
    work_dir: str | Path, repo_dir: str = REPO_DIR
) -> Iterator[Repository]:
    """
    Load the repository, hand it out for one operation and save it back.

    The state is saved only when the block finishes without an exception.
    """
    repo, store = open_file_repository(work_dir, repo_dir)
    try:
        yield repo
        store.save(repo)
    finally:
        store.dispose()
