"""
Domain layer for PDF generation.
Provides gateways for the conversion engine and the artifact directory, plus a
service that turns a document list and metadata into a cached PDF, so
front-ends (HTTP, CLI or others) can use the same core logic.
"""

import math

from .adapters import DEFAULT_SCRATCH_GRACE_SEC, LocalArtifactStore, PandocEngine
from .errors import (
    ArtifactIOError,
    ConversionError,
    ConversionTimeoutError,
    EngineUnavailableError,
    ErrorKind,
    GenerationError,
    NonZeroExitError,
    SourceNotFoundError,
    SpawnFailedError,
    ValidationError,
    ValidationReason,
)
from .interfaces import ArtifactStoreGateway, EngineGateway
from .keys import artifact_filename, derive_cache_key
from .models import Artifact, ConversionOutcome, GenerationRequest, GenerationResult, Metadata
from .service import GenerationService, GenerationState
from .validation import sanitize_request


SCRATCH_GRACE_MARGIN_SEC = 60.0


def scratch_grace(engine_timeout_sec: float) -> float:
    """Idle time after which a scratch directory cannot belong to a live conversion."""
    if engine_timeout_sec <= 0:
        # no engine timeout, so no bound on a conversion's lifetime
        return math.inf
    return max(engine_timeout_sec + SCRATCH_GRACE_MARGIN_SEC, DEFAULT_SCRATCH_GRACE_SEC)


def build_service(config) -> GenerationService:
    """Wire the local adapters for ``config`` and initialize the output directory."""
    store = LocalArtifactStore(
        config.output_dir,
        cache_enabled=config.enable_cache,
        extension=config.output_extension,
        scratch_grace_sec=scratch_grace(config.engine_timeout_sec),
    )
    store.init()
    engine = PandocEngine(
        config.pandoc_command,
        timeout_sec=config.engine_timeout_sec,
        stderr_limit=config.stderr_limit_bytes,
    )
    return GenerationService(config, engine=engine, store=store)
