from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    CONVERSION = "conversion"
    IO = "io"


class ValidationReason(str, Enum):
    EMPTY = "empty"
    INVALID_EXTENSION = "invalid_extension"
    PATH_TRAVERSAL = "path_traversal"
    INVALID_ENUM = "invalid_enum"


class GenerationError(Exception):
    """Base class for every failure surfaced by the generation pipeline.

    Front ends only need ``kind`` and ``detail`` to build a response; the
    subclasses carry the extra fields used in logs.
    """

    kind: ErrorKind = ErrorKind.IO

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(GenerationError):
    kind = ErrorKind.VALIDATION

    def __init__(self, reason: ValidationReason, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason


class EngineUnavailableError(GenerationError):
    kind = ErrorKind.ENGINE_UNAVAILABLE

    def __init__(self, detail: str = "Pandoc is not installed or not available in PATH") -> None:
        super().__init__(detail)


class ConversionError(GenerationError):
    kind = ErrorKind.CONVERSION


class SpawnFailedError(ConversionError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to spawn Pandoc: {reason}")
        self.reason = reason


class NonZeroExitError(ConversionError):
    def __init__(self, code: int, stderr: str) -> None:
        super().__init__(f"Pandoc execution failed: {stderr.strip() or 'Unknown error'}")
        self.code = code
        self.stderr = stderr


class ConversionTimeoutError(ConversionError):
    def __init__(self, timeout_sec: float) -> None:
        super().__init__(f"Pandoc did not finish within {timeout_sec:g} seconds")
        self.timeout_sec = timeout_sec


class ArtifactIOError(GenerationError):
    kind = ErrorKind.IO


class SourceNotFoundError(ArtifactIOError):
    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing files: {', '.join(missing)}")
        self.missing = missing
