import asyncio
import contextlib
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Sequence

import structlog

from .errors import (
    ArtifactIOError,
    ConversionTimeoutError,
    NonZeroExitError,
    SpawnFailedError,
)
from .interfaces import ArtifactStoreGateway, EngineGateway
from .keys import artifact_filename
from .models import Artifact, ConversionOutcome


logger = structlog.get_logger(__name__)

SCRATCH_DIRNAME = ".work"
_CHUNK = 64 * 1024
DEFAULT_SCRATCH_GRACE_SEC = 3600.0


async def _drain(stream: asyncio.StreamReader | None, limit: int) -> bytes:
    """Read ``stream`` to EOF, keeping at most ``limit`` bytes.

    The pipe has to be read to the end even past the limit, otherwise a very
    chatty child blocks on a full pipe and never exits.
    """
    if stream is None:
        return b""
    kept = bytearray()
    while True:
        chunk = await stream.read(_CHUNK)
        if not chunk:
            break
        if len(kept) < limit:
            kept.extend(chunk[: limit - len(kept)])
    return bytes(kept)


def _kill(proc: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()


class PandocEngine(EngineGateway):
    def __init__(
        self,
        command: Sequence[str] = ("pandoc",),
        *,
        timeout_sec: float = 300.0,
        stderr_limit: int = 8192,
        probe_timeout_sec: float = 15.0,
    ) -> None:
        self._command = tuple(command)
        self._timeout = timeout_sec if timeout_sec > 0 else None
        self._stderr_limit = stderr_limit
        self._probe_timeout = probe_timeout_sec

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    async def _spawn(self, args: Sequence[str]) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *self._command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnFailedError(e.strerror or str(e)) from e

    async def _run(self, args: Sequence[str], timeout: float | None) -> ConversionOutcome:
        proc = await self._spawn(args)
        try:
            stdout, stderr, code = await asyncio.wait_for(
                asyncio.gather(
                    _drain(proc.stdout, self._stderr_limit),
                    _drain(proc.stderr, self._stderr_limit),
                    proc.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise ConversionTimeoutError(timeout or 0) from None
        except asyncio.CancelledError:
            _kill(proc)
            await proc.wait()
            raise
        return ConversionOutcome(exit_status=code, stdout=stdout, stderr=stderr)

    async def convert(self, args: Sequence[str], *, request_token: str) -> ConversionOutcome:
        log = logger.bind(request_token=request_token)
        log.info("Executing Pandoc", command=" ".join([*self._command, *args]))
        try:
            outcome = await self._run(args, self._timeout)
        except SpawnFailedError as e:
            log.error("Pandoc spawn error", reason=e.reason)
            raise
        except ConversionTimeoutError:
            log.error("Pandoc timed out", timeout_sec=self._timeout)
            raise

        if outcome.exit_status != 0:
            stderr = outcome.stderr.decode("utf-8", errors="replace")
            log.error("Pandoc failed", exit_code=outcome.exit_status, stderr=stderr)
            raise NonZeroExitError(outcome.exit_status, stderr)
        log.info("Pandoc completed successfully")
        return outcome

    async def version(self) -> str | None:
        try:
            outcome = await self._run(["--version"], self._probe_timeout)
        except (SpawnFailedError, ConversionTimeoutError):
            return None
        if outcome.exit_status != 0:
            return None
        lines = outcome.stdout.decode("utf-8", errors="replace").splitlines()
        return lines[0].strip() if lines else ""

    async def available(self) -> bool:
        return await self.version() is not None


class LocalArtifactStore(ArtifactStoreGateway):
    """Artifact directory of record.

    Finished artifacts live at the top level of ``output_dir``. Work in
    progress goes to ``output_dir/.work/<token>_*/`` and only reaches the top
    level through an atomic ``os.replace``.

    ``scratch_grace_sec`` is the minimum idle time before the sweep treats a
    scratch directory as abandoned. It has to exceed the longest conversion
    the engine allows, otherwise a sweep could pull the directory from under
    a running request.
    """

    def __init__(
        self,
        output_dir: str | Path,
        *,
        cache_enabled: bool = False,
        extension: str = "pdf",
        scratch_grace_sec: float = DEFAULT_SCRATCH_GRACE_SEC,
    ) -> None:
        self._base = Path(output_dir).resolve()
        self._cache_enabled = cache_enabled
        self._extension = extension
        self._scratch_grace = scratch_grace_sec

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    @property
    def output_dir(self) -> Path:
        return self._base

    @property
    def scratch_root(self) -> Path:
        return self._base / SCRATCH_DIRNAME

    def init(self) -> None:
        created = not self._base.exists()
        try:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactIOError(f"Cannot create output directory {self._base}: {e}") from e
        if created:
            logger.info("Created output directory", path=str(self._base))

    def artifact_path(self, cache_key: str, title: str) -> Path:
        return self._base / artifact_filename(cache_key, title, self._extension)

    async def lookup(self, cache_key: str, title: str, *, pin: bool = False) -> Artifact | None:
        """Return the cached artifact, or None on a miss.

        With ``pin`` the file is opened here and the artifact carries the
        handle, so a later sweep or republish cannot change what is read.
        """
        if not self._cache_enabled:
            return None
        path = self.artifact_path(cache_key, title)

        def _stat() -> Artifact | None:
            try:
                if pin:
                    return Artifact.from_handle(path, path.open("rb"), cached=True)
                return Artifact.from_path(path, cached=True) if path.is_file() else None
            except FileNotFoundError:
                # swept between is_file() and stat()
                return None

        return await asyncio.to_thread(_stat)

    async def open_scratch(self, request_token: str) -> Path:
        def _mkdtemp() -> Path:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=f"{request_token}_", dir=self.scratch_root))

        try:
            return await asyncio.to_thread(_mkdtemp)
        except OSError as e:
            raise ArtifactIOError(f"Cannot create scratch directory: {e}") from e

    async def discard_scratch(self, scratch: Path) -> None:
        try:
            await asyncio.to_thread(shutil.rmtree, scratch)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clean up scratch directory", path=str(scratch), error=str(e))

    async def publish(self, cache_key: str, title: str, source_path: Path, *, pin: bool = False) -> Artifact:
        target = self.artifact_path(cache_key, title)

        def _publish() -> Artifact:
            try:
                size = source_path.stat().st_size
            except FileNotFoundError:
                raise ArtifactIOError("PDF generation completed but output file not found") from None
            if size == 0:
                raise ArtifactIOError("PDF generation completed but output file is empty")
            if not pin:
                os.replace(source_path, target)
                return Artifact.from_path(target)
            # the handle follows the inode through the rename
            handle = source_path.open("rb")
            try:
                os.replace(source_path, target)
                return Artifact.from_handle(target, handle)
            except BaseException:
                handle.close()
                raise

        try:
            return await asyncio.to_thread(_publish)
        except ArtifactIOError:
            raise
        except OSError as e:
            raise ArtifactIOError(f"Cannot publish {target.name}: {e}") from e

    def _is_artifact(self, entry: os.DirEntry) -> bool:
        return (
            entry.is_file(follow_symlinks=False)
            and not entry.name.startswith(".")
            and entry.name.endswith(f".{self._extension}")
        )

    @staticmethod
    def _last_activity(scratch: str) -> float:
        # newest file inside, or the directory itself while still empty
        newest = None
        with os.scandir(scratch) as entries:
            for entry in entries:
                mtime = entry.stat(follow_symlinks=False).st_mtime
                newest = mtime if newest is None else max(newest, mtime)
        return newest if newest is not None else os.stat(scratch).st_mtime

    def _sweep_scratch(self, max_age_sec: float) -> int:
        cutoff = time.time() - max(max_age_sec, self._scratch_grace)
        removed = 0
        try:
            with os.scandir(self.scratch_root) as it:
                entries = list(it)
        except FileNotFoundError:
            return 0
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                continue
            try:
                if self._last_activity(entry.path) > cutoff:
                    continue
                shutil.rmtree(entry.path)
            except FileNotFoundError:
                continue
            removed += 1
            logger.info("Removed abandoned scratch directory", path=entry.path)
        return removed

    async def sweep(self, max_age_sec: float) -> int:
        """Delete artifacts at least ``max_age_sec`` old and return how many.

        Abandoned scratch directories are removed on the same pass but not
        counted.
        """
        cutoff = time.time() - max_age_sec

        def _sweep() -> int:
            removed = 0
            with os.scandir(self._base) as entries:
                for entry in entries:
                    if not self._is_artifact(entry):
                        continue
                    try:
                        if entry.stat().st_mtime > cutoff:
                            continue
                        os.unlink(entry.path)
                    except FileNotFoundError:
                        continue
                    removed += 1
                    logger.info("Cleaned old cache file", filename=entry.name)
            self._sweep_scratch(max_age_sec)
            return removed

        try:
            removed = await asyncio.to_thread(_sweep)
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise ArtifactIOError(f"Cache cleanup failed: {e}") from e
        if removed:
            logger.info("Cache cleanup complete", removed=removed)
        return removed

    async def list_artifacts(self) -> list[Artifact]:
        def _list() -> list[Artifact]:
            found: list[Artifact] = []
            with os.scandir(self._base) as entries:
                for entry in entries:
                    if not self._is_artifact(entry):
                        continue
                    try:
                        found.append(Artifact.from_path(Path(entry.path)))
                    except FileNotFoundError:
                        continue
            return sorted(found, key=lambda a: a.filename)

        try:
            return await asyncio.to_thread(_list)
        except FileNotFoundError:
            return []
