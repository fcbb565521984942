from pathlib import Path
from typing import Protocol, Sequence

from .models import Artifact, ConversionOutcome


class EngineGateway(Protocol):
    async def available(self) -> bool:
        """Cheap check that the engine can be started at all."""

    async def version(self) -> str | None:
        ...

    async def convert(self, args: Sequence[str], *, request_token: str) -> ConversionOutcome:
        """Run the engine with ``args``; raise a ConversionError on failure."""


class ArtifactStoreGateway(Protocol):
    @property
    def cache_enabled(self) -> bool:
        ...

    def init(self) -> None:
        ...

    async def lookup(self, cache_key: str, title: str, *, pin: bool = False) -> Artifact | None:
        ...

    async def open_scratch(self, request_token: str) -> Path:
        ...

    async def discard_scratch(self, scratch: Path) -> None:
        ...

    async def publish(self, cache_key: str, title: str, source_path: Path, *, pin: bool = False) -> Artifact:
        ...

    async def sweep(self, max_age_sec: float) -> int:
        ...

    async def list_artifacts(self) -> list[Artifact]:
        ...
