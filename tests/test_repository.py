import shutil

import pytest

from commit_plane.blob import canonical
from commit_plane.errors import (
    AlreadyExistsError,
    BlobIOError,
    ForbiddenError,
    NoChangesError,
    NotFoundError,
)
from commit_plane.impl.memory import MemoryBlobStore
from commit_plane.repository import CheckoutResult, Repository


def commit_file(repo: Repository, write, name: str, content: str, message: str):
    repo.add(write(name, content))
    return repo.commit(message).commit


def test_new_repository_has_initial_commit(repo):
    assert repo.current.name == "master"
    assert [c.id for c in repo.log()] == [1]
    assert repo.log()[0].message == "initial commit"
    assert repo.find("initial commit") == [1]


def test_commit_ids_increase_across_branches(repo, write):
    ids = [commit_file(repo, write, "a.txt", "1", "m1").id]
    repo.add_branch("side")
    repo.checkout("side")
    ids.append(commit_file(repo, write, "b.txt", "1", "s1").id)
    repo.checkout("master")
    ids.append(commit_file(repo, write, "a.txt", "2", "m2").id)

    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)
    assert ids[0] > 1


def test_commit_without_changes(repo, write):
    path = write("a.txt", "a")
    repo.add(path)
    repo.commit("first")

    with pytest.raises(NoChangesError):
        repo.add(path)
    with pytest.raises(NoChangesError):
        repo.commit("second")
    assert len(repo.global_log()) == 2


def test_add_branch_rejects_duplicates(repo):
    repo.add_branch("dev")
    with pytest.raises(AlreadyExistsError):
        repo.add_branch("dev")
    with pytest.raises(AlreadyExistsError):
        repo.add_branch("master")
    assert repo.status().branches == ["master", "dev"]


def test_remove_branch(repo):
    repo.add_branch("dev")

    with pytest.raises(ForbiddenError):
        repo.remove_branch("master")
    with pytest.raises(NotFoundError):
        repo.remove_branch("nope")

    repo.remove_branch("dev")
    assert repo.status().branches == ["master"]


def test_checkout_branch_restores_its_files(repo, write, work):
    commit_file(repo, write, "a.txt", "base", "base")
    repo.add_branch("dev")
    assert repo.checkout("dev") is CheckoutResult.BRANCH
    commit_file(repo, write, "a.txt", "dev", "dev edit")

    assert repo.checkout("master") is CheckoutResult.BRANCH
    assert repo.current.name == "master"
    assert (work / "a.txt").read_text() == "base"

    repo.checkout("dev")
    assert (work / "a.txt").read_text() == "dev"


def test_checkout_current_branch_is_a_no_op(repo):
    assert repo.checkout("master") is CheckoutResult.ALREADY_CURRENT
    assert repo.current.name == "master"


def test_checkout_falls_back_to_file(repo, write, work):
    commit_file(repo, write, "a.txt", "committed", "add a")
    (work / "a.txt").write_text("dirty")

    assert repo.checkout("a.txt") is CheckoutResult.FILE
    assert (work / "a.txt").read_text() == "committed"

    with pytest.raises(NotFoundError, match="no such branch"):
        repo.checkout("nothing-here")


def test_checkout_file_from_commit(repo, write, work):
    first = commit_file(repo, write, "a.txt", "v1", "v1")
    commit_file(repo, write, "a.txt", "v2", "v2")

    repo.checkout_file(first.id, "a.txt")
    assert (work / "a.txt").read_text() == "v1"

    with pytest.raises(NotFoundError, match="No commit"):
        repo.checkout_file(999, "a.txt")
    with pytest.raises(NotFoundError, match="does not exist in that commit"):
        repo.checkout_file(first.id, "b.txt")


def test_reset_to_commit_outside_current_history(repo, write, work):
    commit_file(repo, write, "a.txt", "master", "on master")
    repo.add_branch("other")
    repo.checkout("other")
    foreign = commit_file(repo, write, "a.txt", "other", "on other")
    commit_file(repo, write, "b.txt", "b", "more on other")
    repo.checkout("master")

    assert foreign.id not in {c.id for c in repo.log()}
    assert repo.reset(foreign.id) == []

    assert repo.current.name == "master"
    assert repo.current.head is foreign
    for path, blob in repo.manifest(foreign.id).items():
        assert open(path).read() == repo.blobs.content(blob).decode()
    assert (work / "a.txt").read_text() == "other"


def test_reset_unknown_commit(repo):
    with pytest.raises(NotFoundError):
        repo.reset(42)
    assert repo.current.head.id == 1


def test_log_and_global_log(repo, write):
    commit_file(repo, write, "a.txt", "1", "one")
    repo.add_branch("dev")
    repo.checkout("dev")
    commit_file(repo, write, "a.txt", "2", "two")
    repo.checkout("master")

    assert [c.message for c in repo.log()] == ["one", "initial commit"]
    assert [c.message for c in repo.global_log()] == ["initial commit", "one", "two"]


def test_find_collects_duplicate_messages(repo, write):
    first = commit_file(repo, write, "a.txt", "1", "same")
    second = commit_file(repo, write, "a.txt", "2", "same")

    assert repo.find("same") == [first.id, second.id]
    with pytest.raises(NotFoundError, match="Found no commit"):
        repo.find("different")


def test_status_lists_staging(repo, write):
    commit_file(repo, write, "tracked.txt", "t", "track")
    repo.add_branch("dev")
    repo.add(write("new.txt", "n"))
    repo.remove("tracked.txt")

    status = repo.status()
    assert status.current == "master"
    assert status.branches == ["master", "dev"]
    assert [canonical(p) for p in status.staged] == [canonical("new.txt")]
    assert status.marked_for_removal == ["tracked.txt"]


@pytest.fixture
def memory_repo(work) -> Repository:
    return Repository.create(MemoryBlobStore())


def test_failed_branch_checkout_keeps_current_branch(memory_repo, write):
    commit_file(memory_repo, write, "a.txt", "a", "add a")
    memory_repo.add_branch("feature")
    memory_repo.blobs.data.clear()

    with pytest.raises(BlobIOError) as e:
        memory_repo.checkout("feature")

    assert e.value.paths == [canonical("a.txt")]
    assert memory_repo.current.name == "master", "Failed checkout must not switch"


def test_reset_recreates_missing_directories(memory_repo, write, work):
    commit = commit_file(memory_repo, write, "sub/b.txt", "b", "add b")
    shutil.rmtree(work / "sub")

    assert memory_repo.reset(commit.id) == []
    assert (work / "sub" / "b.txt").read_text() == "b"
