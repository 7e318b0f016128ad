"""Artifact storage references.

The cache never reads artifact bytes.  It only needs to know whether the
artifact behind ``artifact_location`` still exists, how large it is, and
how to remove it when its entry is invalidated.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from folio.core.errors import ArtifactError
from folio.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ArtifactStore(Protocol):
    def exists(self, location: str) -> bool: ...

    def size(self, location: str) -> int: ...

    def delete(self, location: str) -> bool: ...


class FileArtifactStore:
    """Artifacts as files; relative locations resolve under *root*."""

    def __init__(self, root: Path | str | None = None) -> None:
        self.root = Path(root) if root is not None else None

    def resolve(self, location: str) -> Path:
        path = Path(location)
        if not path.is_absolute() and self.root is not None:
            path = self.root / path
        return path

    def exists(self, location: str) -> bool:
        return self.resolve(location).is_file()

    def size(self, location: str) -> int:
        """Size in bytes, 0 for a missing file."""
        try:
            return self.resolve(location).stat().st_size
        except FileNotFoundError:
            return 0

    def delete(self, location: str) -> bool:
        """Remove the artifact; ``False`` if it was already gone.

        Raises:
            ArtifactError: the file exists but could not be removed.
        """
        path = self.resolve(location)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ArtifactError(f"Failed to delete artifact {path}", cause=e) from e
        logger.debug("artifact.deleted", location=str(path))
        return True


__all__ = ["ArtifactStore", "FileArtifactStore"]
