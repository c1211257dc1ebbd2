from datetime import datetime
from typing import Any, Callable

from sqlalchemy import BigInteger, ForeignKey, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from commit_plane.base import BlobStore, RepoStore
from commit_plane.errors import NotFoundError
from commit_plane.repository import RepoData, Repository

INHERITED = "inherited"
ADDED = "added"
STAGED_ADD = "add"
STAGED_REMOVE = "remove"


class Base(DeclarativeBase):
    pass


class RepoModel(Base):
    __tablename__ = "repository"
    id: Mapped[int] = mapped_column(primary_key=True)
    last_commit_id: Mapped[int] = mapped_column(nullable=False)
    last_blob_no: Mapped[int] = mapped_column(nullable=False)
    current_branch: Mapped[str] = mapped_column(nullable=False)


class ManifestEntryModel(Base):
    __tablename__ = "manifest_entries"
    commit_id: Mapped[int] = mapped_column(ForeignKey("commits.id"), primary_key=True)
    section: Mapped[str] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(primary_key=True)
    original_path: Mapped[str] = mapped_column(nullable=False)
    stored_name: Mapped[str] = mapped_column(nullable=False)
    fingerprint: Mapped[int] = mapped_column(BigInteger, nullable=False)


class RemovedPathModel(Base):
    __tablename__ = "removed_paths"
    commit_id: Mapped[int] = mapped_column(ForeignKey("commits.id"), primary_key=True)
    position: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(nullable=False)


class StagedPathModel(Base):
    __tablename__ = "staged_paths"
    commit_id: Mapped[int] = mapped_column(ForeignKey("commits.id"), primary_key=True)
    kind: Mapped[str] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(primary_key=True)
    original_path: Mapped[str] = mapped_column(nullable=False)


class CommitModel(Base):
    __tablename__ = "commits"
    id: Mapped[int] = mapped_column(primary_key=True)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("commits.id"), nullable=True
    )
    message: Mapped[str] = mapped_column(nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    # Order in the commit index; in-progress commits are not indexed
    position: Mapped[int | None] = mapped_column(nullable=True)

    entries: Mapped[list[ManifestEntryModel]] = relationship(
        cascade="all, delete-orphan"
    )
    removed: Mapped[list[RemovedPathModel]] = relationship(
        cascade="all, delete-orphan", order_by=RemovedPathModel.position
    )
    staged: Mapped[list[StagedPathModel]] = relationship(cascade="all, delete-orphan")


class BranchModel(Base):
    __tablename__ = "branches"
    name: Mapped[str] = mapped_column(primary_key=True)
    position: Mapped[int] = mapped_column(nullable=False)
    head_id: Mapped[int] = mapped_column(ForeignKey("commits.id"))
    in_progress_id: Mapped[int | None] = mapped_column(
        ForeignKey("commits.id"), nullable=True
    )


def _commit_model(data: dict[str, Any], position: int | None) -> CommitModel:
    model = CommitModel(
        id=data["id"],
        parent_id=data["parent_id"],
        message=data["message"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
        position=position,
    )
    model.entries = [
        ManifestEntryModel(
            section=section,
            path=blob["absolute_path"],
            original_path=blob["original_path"],
            stored_name=blob["stored_name"],
            fingerprint=blob["fingerprint"],
        )
        for section in (INHERITED, ADDED)
        for blob in data[section]
    ]
    model.removed = [
        RemovedPathModel(position=i, path=path)
        for i, path in enumerate(data["removed"])
    ]
    staging = data["staging"] or {}
    model.staged = [
        StagedPathModel(kind=kind, path=path, original_path=original)
        for kind, key in ((STAGED_ADD, "to_add"), (STAGED_REMOVE, "to_remove"))
        for path, original in staging.get(key, {}).items()
    ]
    return model


def _commit_data(model: CommitModel) -> dict[str, Any]:
    sections: dict[str, list[dict[str, Any]]] = {INHERITED: [], ADDED: []}
    for entry in model.entries:
        sections[entry.section].append(
            {
                "original_path": entry.original_path,
                "absolute_path": entry.path,
                "stored_name": entry.stored_name,
                "fingerprint": entry.fingerprint,
            }
        )

    staging = None
    if model.position is None:
        staging = {
            "to_add": {
                s.path: s.original_path for s in model.staged if s.kind == STAGED_ADD
            },
            "to_remove": {
                s.path: s.original_path for s in model.staged if s.kind == STAGED_REMOVE
            },
        }

    return {
        "id": model.id,
        "parent_id": model.parent_id,
        "message": model.message,
        "timestamp": model.timestamp.isoformat(),
        INHERITED: sections[INHERITED],
        ADDED: sections[ADDED],
        "removed": [item.path for item in model.removed],
        "staging": staging,
    }


class SqlRepoStore(RepoStore):
    """
    Repository state in a relational database.

    ``save`` rewrites every table in one transaction, so the stored state is
    always one complete snapshot of the in-memory repository.
    """

    def __init__(
        self, session_maker: Callable[[], Session], engine: Engine | None = None
    ) -> None:
        self.session_maker = session_maker
        self.engine = engine

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("SqlRepoStore(...)")
        else:
            p.text(f"SqlRepoStore(engine={self.engine})")

    def exists(self) -> bool:
        with self.session_maker() as session:
            return session.execute(select(RepoModel.id)).first() is not None

    def save(self, repository: Repository) -> None:
        data = repository.dump()
        with self.session_maker() as session:
            for model in (
                StagedPathModel,
                RemovedPathModel,
                ManifestEntryModel,
                BranchModel,
                CommitModel,
                RepoModel,
            ):
                session.execute(delete(model))

            session.add(
                RepoModel(
                    id=1,
                    last_commit_id=data["last_commit_id"],
                    last_blob_no=data["last_blob_no"],
                    current_branch=data["current"],
                )
            )
            for position, item in enumerate(data["commits"]):
                session.add(_commit_model(item, position))

            for position, item in enumerate(data["branches"]):
                in_progress = item["in_progress"]
                if in_progress is not None:
                    session.add(_commit_model(in_progress, None))
                session.add(
                    BranchModel(
                        name=item["name"],
                        position=position,
                        head_id=item["head"],
                        in_progress_id=in_progress["id"] if in_progress else None,
                    )
                )
            session.commit()

    def load(self, blobs: BlobStore) -> Repository:
        with self.session_maker() as session:
            repo_model = session.execute(select(RepoModel)).scalar_one_or_none()
            if repo_model is None:
                raise NotFoundError("No repository state has been saved")

            commits = session.execute(
                select(CommitModel)
                .where(CommitModel.position.is_not(None))
                .order_by(CommitModel.position)
            ).scalars()

            data: RepoData = {
                "last_commit_id": repo_model.last_commit_id,
                "last_blob_no": repo_model.last_blob_no,
                "current": repo_model.current_branch,
                "commits": [_commit_data(model) for model in commits],
                "branches": [],
            }

            branches = session.execute(
                select(BranchModel).order_by(BranchModel.position)
            ).scalars()
            for branch in branches:
                in_progress = None
                if branch.in_progress_id is not None:
                    model = session.execute(
                        select(CommitModel).where(
                            CommitModel.id == branch.in_progress_id
                        )
                    ).scalar_one()
                    in_progress = _commit_data(model)
                data["branches"].append(
                    {
                        "name": branch.name,
                        "head": branch.head_id,
                        "in_progress": in_progress,
                    }
                )

        return Repository.load(data, blobs)

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()


def create_sql_repo_store(db_url: str) -> SqlRepoStore:
    engine = create_engine(db_url)
    Base.metadata.create_all(engine)
    return SqlRepoStore(sessionmaker(bind=engine), engine)
