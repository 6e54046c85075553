"""Change events delivered by a source watcher."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ChangeEvent:
    """A document was created or updated at the source.

    ``identity`` is the stable source-side key; the same identity always
    refers to the same logical document across versions.
    """

    identity: str
    content: bytes
    title: str = ""
    url: str = ""
    name: str = ""
    kind: str | None = None
    mime_type: str | None = None

    @property
    def content_hash(self) -> str:
        """SHA-256 hex digest of the raw content (used for change detection)."""
        return hashlib.sha256(self.content).hexdigest()

    @property
    def filename(self) -> str:
        """Name used for format detection: ``name`` if set, else the identity."""
        return self.name or self.identity

    @classmethod
    def from_path(
        cls, path: Path, root: Path | None = None, kind: str | None = None
    ) -> ChangeEvent:
        """Build an event for a file; identity is its POSIX path relative to *root*."""
        return FileChange.for_path(path, root=root, kind=kind).read()


@dataclass
class FileChange:
    """A changed file whose content is read only when it is processed.

    Folder scans yield these so that a file which vanishes or cannot be read
    fails its own identity instead of the whole scan.
    """

    identity: str
    path: Path
    kind: str | None = None

    @classmethod
    def for_path(
        cls, path: Path, root: Path | None = None, kind: str | None = None
    ) -> FileChange:
        resolved = path.resolve()
        identity = resolved.relative_to(root.resolve()).as_posix() if root else resolved.as_posix()
        return cls(identity=identity, path=resolved, kind=kind)

    def read(self) -> ChangeEvent:
        """Load the file into a ``ChangeEvent``. Raises ``OSError`` if it cannot be read."""
        return ChangeEvent(
            identity=self.identity,
            content=self.path.read_bytes(),
            title=self.path.stem,
            url=self.path.as_uri(),
            name=self.path.name,
            kind=self.kind,
        )
