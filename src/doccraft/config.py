import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


TRUTHY = {"1", "true", "yes", "on"}


def env_flag(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


@dataclass(frozen=True)
class ServiceConfig:
    """Process-wide settings, resolved once at startup and passed down explicitly."""

    docs_dir: Path
    output_dir: Path
    pandoc_defaults: Path | None = None
    pandoc_command: tuple[str, ...] = ("pandoc",)
    enable_cache: bool = False
    engine_timeout_sec: float = 300.0
    stderr_limit_bytes: int = 8192
    output_extension: str = "pdf"
    log_level: str = "INFO"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    reload: bool = False
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServiceConfig":
        env = os.environ if environ is None else environ
        defaults = env.get("PANDOC_DEFAULTS", "./pandoc.defaults.yml").strip()
        return cls(
            docs_dir=Path(env.get("DOCS_DIR", "./docs")).resolve(),
            output_dir=Path(env.get("OUTPUT_DIR", "./pdf")).resolve(),
            pandoc_defaults=Path(defaults).resolve() if defaults else None,
            pandoc_command=tuple(shlex.split(env.get("PANDOC_PATH", "pandoc"))) or ("pandoc",),
            enable_cache=env_flag(env, "ENABLE_CACHE"),
            engine_timeout_sec=float(env.get("ENGINE_TIMEOUT_SEC", "300")),
            stderr_limit_bytes=int(env.get("STDERR_LIMIT_BYTES", "8192")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            debug=env_flag(env, "DOCCRAFT_DEBUG"),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "3000")),
            reload=env_flag(env, "RELOAD"),
            cors_origins=tuple(o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip()),
        )
