import hashlib
import json
import re
from typing import Sequence

from .models import Metadata


# 64 bits of SHA-256. Collisions are accepted at this width; there is no
# recovery path if two requests ever map to the same key.
CACHE_KEY_LENGTH = 16

_TITLE_UNSAFE = re.compile(r"[^a-zA-Z0-9]")


def canonical_payload(docs: Sequence[str], metadata: Metadata) -> bytes:
    payload = {"docs": list(docs), "metadata": metadata.as_dict()}
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def derive_cache_key(docs: Sequence[str], metadata: Metadata) -> str:
    return hashlib.sha256(canonical_payload(docs, metadata)).hexdigest()[:CACHE_KEY_LENGTH]


def artifact_filename(cache_key: str, title: str, extension: str = "pdf") -> str:
    return f"{_TITLE_UNSAFE.sub('_', title)}_{cache_key}.{extension}"
