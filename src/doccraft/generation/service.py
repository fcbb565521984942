import asyncio
from datetime import date as date_type
from enum import Enum
from pathlib import Path
from typing import Sequence

import structlog

from ..config import ServiceConfig
from .descriptor import write_descriptor
from .errors import (
    ArtifactIOError,
    EngineUnavailableError,
    GenerationError,
    SourceNotFoundError,
    ValidationError,
)
from .interfaces import ArtifactStoreGateway, EngineGateway
from .keys import artifact_filename, derive_cache_key
from .models import GenerationRequest, GenerationResult
from .validation import sanitize_request


logger = structlog.get_logger(__name__)


class GenerationState(str, Enum):
    PROBING = "probing"
    VALIDATING = "validating"
    RESOLVING = "resolving"
    KEY_DERIVED = "key_derived"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    DESCRIPTOR_WRITTEN = "descriptor_written"
    CONVERTING = "converting"
    VERIFYING = "verifying"
    STORED = "stored"


class GenerationService:
    """Core domain service producing one PDF artifact per request.

    This service is framework-agnostic. Front ends hand it raw parameters and
    get back a :class:`GenerationResult` or a :class:`GenerationError`; the
    engine and the artifact directory are only reached through gateways.
    """

    def __init__(
        self,
        config: ServiceConfig,
        engine: EngineGateway,
        store: ArtifactStoreGateway,
    ) -> None:
        self._config = config
        self._engine = engine
        self._store = store

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def store(self) -> ArtifactStoreGateway:
        return self._store

    async def engine_available(self) -> bool:
        return await self._engine.available()

    async def engine_version(self) -> str | None:
        return await self._engine.version()

    async def sweep_old_artifacts(self, max_age_sec: float) -> int:
        return await self._store.sweep(max_age_sec)

    async def generate(
        self,
        docs: object,
        *,
        title: str | None = None,
        subtitle: str | None = None,
        author: str | None = None,
        date: str | None = None,
        disposition: str | None = None,
        request_token: str | None = None,
        today: date_type | None = None,
        open_stream: bool = False,
    ) -> GenerationResult:
        """Produce the artifact for raw front-end parameters.

        Probes the engine, sanitizes the parameters, then runs the cache
        lookup or the full conversion. Raises a :class:`GenerationError`
        subclass on any failure.

        With ``open_stream`` the returned artifact carries an open read
        handle on the exact file that was found or published; the caller
        must close it (``result.artifact.close()``).
        """
        log = logger.bind(request_token=request_token)
        log.info("Starting PDF generation")
        await self._ensure_engine(log)
        try:
            request = sanitize_request(
                docs,
                title=title,
                subtitle=subtitle,
                author=author,
                date=date,
                disposition=disposition,
                request_token=request_token,
                today=today,
            )
        except ValidationError as e:
            log.warning("Validation failed", state=GenerationState.VALIDATING.value, reason=e.reason.value, detail=e.detail)
            raise
        return await self._run(request, open_stream)

    async def generate_request(self, request: GenerationRequest, *, open_stream: bool = False) -> GenerationResult:
        """Same as :meth:`generate` for a request that is already sanitized."""
        await self._ensure_engine(logger.bind(request_token=request.request_token))
        return await self._run(request, open_stream)

    async def _ensure_engine(self, log) -> None:
        if not await self._engine.available():
            log.error("PDF generation failed", state=GenerationState.PROBING.value, kind="engine_unavailable")
            raise EngineUnavailableError()

    async def _run(self, request: GenerationRequest, open_stream: bool = False) -> GenerationResult:
        log = logger.bind(request_token=request.request_token)
        title = request.metadata.title
        state = GenerationState.RESOLVING
        scratch: Path | None = None
        try:
            inputs = await self._resolve_sources(request.docs)
            log.info("All input files validated", docs=list(request.docs))

            cache_key = derive_cache_key(request.docs, request.metadata)
            state = GenerationState.KEY_DERIVED
            log = log.bind(cache_key=cache_key)

            state = GenerationState.CACHE_CHECK
            cached = await self._store.lookup(cache_key, title, pin=open_stream)
            if cached is not None:
                state = GenerationState.CACHE_HIT
                log.info("Using cached PDF", filename=cached.filename, size=cached.size)
                return GenerationResult(artifact=cached, request=request, cache_key=cache_key)

            state = GenerationState.CACHE_MISS
            scratch = await self._store.open_scratch(request.request_token)
            descriptor = await asyncio.to_thread(
                write_descriptor, request.metadata, scratch, request.request_token
            )
            state = GenerationState.DESCRIPTOR_WRITTEN
            log.info("Created metadata file")

            output = scratch / artifact_filename(cache_key, title, self._config.output_extension)
            state = GenerationState.CONVERTING
            await self._engine.convert(
                self._engine_args(output, descriptor, inputs),
                request_token=request.request_token,
            )

            state = GenerationState.VERIFYING
            artifact = await self._store.publish(cache_key, title, output, pin=open_stream)
            state = GenerationState.STORED
            log.info("PDF generated successfully", filename=artifact.filename, size=artifact.size)
            return GenerationResult(artifact=artifact, request=request, cache_key=cache_key)
        except GenerationError as e:
            log.warning("PDF generation failed", state=state.value, kind=e.kind.value, detail=e.detail)
            raise
        except OSError as e:
            log.warning("PDF generation failed", state=state.value, kind="io", detail=str(e))
            raise ArtifactIOError(str(e)) from e
        finally:
            if scratch is not None:
                await self._store.discard_scratch(scratch)
                log.info("Cleaned up temporary files")

    def _engine_args(self, output: Path, descriptor: Path, inputs: Sequence[Path]) -> list[str]:
        args: list[str] = []
        if self._config.pandoc_defaults is not None:
            args += ["--defaults", str(self._config.pandoc_defaults)]
        args += ["-o", str(output), str(descriptor)]
        args += [str(p) for p in inputs]
        return args

    async def _resolve_sources(self, docs: Sequence[str]) -> list[Path]:
        root = self._config.docs_dir

        def _resolve() -> list[Path]:
            resolved_root = root.resolve()
            found: list[Path] = []
            missing: list[str] = []
            for doc in docs:
                path = (resolved_root / doc).resolve()
                # a symlink may not lead out of the source root
                if path.is_file() and path.is_relative_to(resolved_root):
                    found.append(path)
                else:
                    missing.append(doc)
            if missing:
                raise SourceNotFoundError(missing)
            return found

        return await asyncio.to_thread(_resolve)
