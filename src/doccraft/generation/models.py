import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO


DISPOSITIONS = ("inline", "attachment")


@dataclass(frozen=True)
class Metadata:
    title: str = "Document"
    subtitle: str = ""
    author: str = ""
    date: str = ""

    def as_dict(self) -> dict[str, str]:
        # Field order is part of the cache key; keep it fixed.
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "author": self.author,
            "date": self.date,
        }


@dataclass(frozen=True)
class GenerationRequest:
    docs: tuple[str, ...]
    metadata: Metadata
    request_token: str
    disposition: str = "inline"


@dataclass(frozen=True)
class ConversionOutcome:
    exit_status: int
    stdout: bytes = b""
    stderr: bytes = b""


@dataclass(frozen=True)
class Artifact:
    filename: str
    path: Path
    size: int
    modified_at: datetime
    cached: bool = False
    # Open read handle on the exact file described by size/modified_at, when
    # the caller asked for one. The caller owns it and must close it.
    handle: BinaryIO | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_path(cls, path: Path, *, cached: bool = False) -> "Artifact":
        stat = path.stat()
        return cls(
            filename=path.name,
            path=path,
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            cached=cached,
        )

    @classmethod
    def from_handle(cls, path: Path, handle: BinaryIO, *, cached: bool = False) -> "Artifact":
        stat = os.fstat(handle.fileno())
        return cls(
            filename=path.name,
            path=path,
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            cached=cached,
            handle=handle,
        )

    def open(self) -> BinaryIO:
        return self.path.open("rb")

    def close(self) -> None:
        if self.handle is not None:
            self.handle.close()


@dataclass(frozen=True)
class GenerationResult:
    artifact: Artifact
    request: GenerationRequest
    cache_key: str = ""

    @property
    def filename(self) -> str:
        return self.artifact.filename

    @property
    def size(self) -> int:
        return self.artifact.size

    @property
    def cached(self) -> bool:
        return self.artifact.cached
