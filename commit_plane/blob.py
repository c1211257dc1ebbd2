import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from commit_plane.constants import CONFLICT_SUFFIX

Fingerprint = int


def canonical(path: str | Path) -> str:
    """Manifest key for a user supplied path."""
    return str(Path(path).resolve())


def fingerprint_of(path: str | Path) -> Fingerprint:
    """
    Modification time of ``path`` in nanoseconds.

    Two files with the same fingerprint are treated as identical content;
    no hashing is involved.
    """
    return os.stat(path).st_mtime_ns


@dataclass(frozen=True)
class StoredFile:
    """
    A working-tree file copied into blob storage.

    ``absolute_path`` identifies the file inside a manifest, ``fingerprint``
    decides whether it changed.
    """

    original_path: str
    absolute_path: str
    stored_name: str
    fingerprint: Fingerprint

    @property
    def conflicted_path(self) -> str:
        return self.absolute_path + CONFLICT_SUFFIX

    def dump(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def load(cls, data: dict[str, Any]) -> "StoredFile":
        return cls(**data)

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("StoredFile(...)")
        else:
            p.text(f"StoredFile({self.original_path!r} -> {self.stored_name})")
