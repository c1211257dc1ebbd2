import os

import pytest

from commit_plane.blob import canonical
from commit_plane.errors import NotFoundError, SelfOperationError


def commit_file(repo, write, name, content, message):
    repo.add(write(name, content))
    return repo.commit(message).commit


def test_merge_fast_forwards_upstream_edits(repo, write, work):
    """
    1. Base: a.txt
    2. Feature: edits a.txt, adds b.txt
    3. Master: no changes
    4. Merge feature into master -> master tracks feature's a.txt and b.txt
    """
    commit_file(repo, write, "a.txt", "base", "base")
    repo.add_branch("feature")
    repo.checkout("feature")
    commit_file(repo, write, "a.txt", "feature", "edit a")
    commit_file(repo, write, "b.txt", "new", "add b")
    feature_view = repo.manifest(repo.current.head.id)
    repo.checkout("master")
    assert (work / "a.txt").read_text() == "base"

    result = repo.merge("feature")

    assert repo.current.name == "master", "Merge should end on the original branch"
    view = repo.manifest(repo.current.head.id)
    assert view[canonical("a.txt")] == feature_view[canonical("a.txt")]
    assert view[canonical("b.txt")] == feature_view[canonical("b.txt")]
    assert sorted(result.copied) == sorted([canonical("a.txt"), canonical("b.txt")])
    assert result.conflicts == []
    assert (work / "a.txt").read_text() == "feature"
    assert (work / "b.txt").read_text() == "new"
    assert not (work / "a.txt.conflicted").exists()


def test_merge_conflict_writes_conflicted_copy(repo, write, work):
    """
    1. Base: a.txt
    2. Feature: a.txt=feature
    3. Master: a.txt=master
    4. Merge -> master keeps its a.txt, feature's goes to a.txt.conflicted
    """
    commit_file(repo, write, "a.txt", "base", "base")
    repo.add_branch("feature")
    repo.checkout("feature")
    commit_file(repo, write, "a.txt", "feature", "feature edit")
    repo.checkout("master")
    commit_file(repo, write, "a.txt", "master", "master edit")
    before = repo.manifest(repo.current.head.id)

    result = repo.merge("feature")

    assert result.conflicts == [canonical("a.txt")]
    assert (
        repo.manifest(repo.current.head.id) == before
    ), "Current version stays tracked"
    assert (work / "a.txt").read_text() == "master"
    assert (work / "a.txt.conflicted").read_text() == "feature"


def test_merge_keeps_changes_made_only_on_current(repo, write, work):
    commit_file(repo, write, "a.txt", "base", "base")
    commit_file(repo, write, "c.txt", "c", "add c")
    repo.add_branch("feature")
    repo.checkout("feature")
    commit_file(repo, write, "b.txt", "b", "add b")
    repo.checkout("master")
    commit_file(repo, write, "a.txt", "master", "master edit")

    result = repo.merge("feature")

    view = repo.manifest(repo.current.head.id)
    assert set(view) == {canonical("a.txt"), canonical("b.txt"), canonical("c.txt")}
    assert result.copied == [canonical("b.txt")]
    assert (work / "a.txt").read_text() == "master"


def test_merge_restores_file_removed_on_current(repo, write):
    commit_file(repo, write, "a.txt", "base", "base")
    repo.add_branch("feature")
    repo.checkout("feature")
    commit_file(repo, write, "a.txt", "feature", "feature edit")
    repo.checkout("master")
    repo.remove("a.txt")
    repo.commit("drop a")
    assert canonical("a.txt") in repo.current.head.removed

    repo.merge("feature")

    head = repo.current.head
    assert canonical("a.txt") not in head.removed
    assert canonical("a.txt") in repo.manifest(head.id)


def test_same_edit_on_both_sides_is_not_a_conflict(repo, write, work):
    commit_file(repo, write, "a.txt", "base", "base")
    repo.add_branch("feature")
    path = write("a.txt", "same")
    repo.add(path)
    repo.commit("master edit")
    repo.checkout("feature")
    # same file and timestamp staged again on the other branch
    path.write_text("same")
    stamp = repo.manifest(repo.branch("master").head.id)[canonical(path)].fingerprint
    os.utime(path, ns=(stamp, stamp))
    repo.add(path)
    repo.commit("feature edit")
    repo.checkout("master")

    result = repo.merge("feature")

    assert result.conflicts == []
    assert not (work / "a.txt.conflicted").exists()


def test_merge_with_itself(repo):
    with pytest.raises(SelfOperationError):
        repo.merge("master")


def test_merge_unknown_branch(repo):
    with pytest.raises(NotFoundError):
        repo.merge("ghost")


def test_merge_carries_staged_work_forward(repo, write):
    commit_file(repo, write, "a.txt", "base", "base")
    repo.add_branch("feature")
    repo.checkout("feature")
    commit_file(repo, write, "b.txt", "b", "add b")
    repo.checkout("master")
    repo.add(write("c.txt", "c"))

    repo.merge("feature")
    commit = repo.commit("add c").commit

    assert canonical("b.txt") in commit.effective()
    assert canonical("c.txt") in commit.effective()


def test_conflict_copy_lands_beside_tracked_file(
    repo, write, work, tmp_path, monkeypatch
):
    write("a.txt", "base")
    repo.add("a.txt")
    repo.commit("base")
    repo.add_branch("feature")
    repo.checkout("feature")
    write("a.txt", "feature")
    repo.add("a.txt")
    repo.commit("feature edit")
    repo.checkout("master")
    write("a.txt", "master")
    repo.add("a.txt")
    repo.commit("master edit")
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    repo.merge("feature")

    assert (work / "a.txt.conflicted").read_text() == "feature"
    assert not (elsewhere / "a.txt.conflicted").exists()
