import marimo

__generated_with = "0.18.3"
app = marimo.App()


@app.cell
def _():
    import logging
    import tempfile
    from pathlib import Path

    import commit_plane as cp
    from IPython.lib.pretty import pprint

    logging.basicConfig(level=logging.INFO)
    work = Path(tempfile.mkdtemp())
    return cp, pprint, work


@app.cell
def _(cp, work):
    repo, store = cp.create_file_repository(work)
    return repo, store


@app.cell
def _(pprint, repo):
    pprint(repo)
    return


@app.cell
def _(repo, work):
    (work / "notes.txt").write_text("first draft\n")
    repo.add(work / "notes.txt")
    repo.commit("add notes")
    repo.add_branch("feature")
    return


@app.cell
def _(repo, work):
    repo.checkout("feature")
    (work / "notes.txt").write_text("feature draft\n")
    repo.add(work / "notes.txt")
    repo.commit("edit notes on feature")
    repo.checkout("master")
    (work / "todo.txt").write_text("rebase me\n")
    repo.add(work / "todo.txt")
    repo.commit("add todo")
    return


@app.cell
def _(pprint, repo):
    pprint(repo.status())
    return


@app.cell
def _(pprint, repo):
    pprint(repo.rebase("feature"))
    return


@app.cell
def _(pprint, repo, work):
    pprint([(c.id, c.message) for c in repo.log()])
    pprint((work / "notes.txt").read_text())
    return


@app.cell
def _(repo, store):
    store.save(repo)
    store.dispose()
    return


if __name__ == "__main__":
    app.run()
