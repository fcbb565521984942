"""Normalization and validation of untrusted request parameters.

Everything here is pure: it never touches the filesystem. Whether the named
documents actually exist is checked later by the service against the source
root.
"""

import re
import secrets
from datetime import date as date_type

from .errors import ValidationError, ValidationReason
from .models import DISPOSITIONS, GenerationRequest, Metadata


MAX_FIELD_LENGTH = 200
MAX_FILENAME_LENGTH = 255
REQUIRED_SUFFIX = ".md"

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?<>:*|"\x00-\x1f\x80-\x9f]')
_RESERVED_FILENAME = re.compile(r"^\.+$")
_WINDOWS_RESERVED = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
_WINDOWS_TRAILING = re.compile(r"[. ]+$")
_MARKUP_CHARS = re.compile(r"[<>'\"&]")
_WHITESPACE_CONTROL = re.compile(r"[\r\n\t]")
_TOKEN_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")

# English regardless of LC_TIME; the default date feeds the cache key.
MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def default_date(today: date_type | None = None) -> str:
    """Render a date the way the title page expects it, e.g. ``October 18, 2026``."""
    today = today or date_type.today()
    return f"{MONTHS[today.month - 1]} {today.day}, {today.year}"


def sanitize_string(value: object, default: str = "") -> str:
    if not value or not isinstance(value, str):
        return default
    cleaned = _MARKUP_CHARS.sub("", value)
    cleaned = _WHITESPACE_CONTROL.sub(" ", cleaned)
    cleaned = cleaned[:MAX_FIELD_LENGTH].strip()
    return cleaned or default


def sanitize_filename(name: str) -> str:
    """Strip characters that are unsafe in a filename on common platforms."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", name)
    if _RESERVED_FILENAME.match(cleaned) or _WINDOWS_RESERVED.match(cleaned):
        return ""
    cleaned = _WINDOWS_TRAILING.sub("", cleaned)
    return cleaned.encode("utf-8")[:MAX_FILENAME_LENGTH].decode("utf-8", errors="ignore")


def _basename(entry: str) -> str:
    return re.split(r"[/\\]", entry)[-1]


def _has_parent_segment(entry: str) -> bool:
    return any(part == ".." for part in re.split(r"[/\\]", entry))


def sanitize_docs(raw_docs: object) -> tuple[str, ...]:
    if not raw_docs or not isinstance(raw_docs, str) or not raw_docs.strip():
        raise ValidationError(
            ValidationReason.EMPTY,
            'Missing or invalid "docs" parameter. Expected comma-separated list of markdown files.',
        )

    entries = [doc.strip() for doc in raw_docs.split(",")]
    entries = [doc for doc in entries if doc]
    if not entries:
        raise ValidationError(ValidationReason.EMPTY, "No valid document files provided")

    sanitized: list[str] = []
    for entry in entries:
        if _has_parent_segment(entry):
            raise ValidationError(
                ValidationReason.PATH_TRAVERSAL,
                f"Invalid filename: {entry}. Path traversal not allowed.",
            )
        basename = _basename(entry)
        name = sanitize_filename(basename)
        if not name.endswith(REQUIRED_SUFFIX):
            raise ValidationError(
                ValidationReason.INVALID_EXTENSION,
                f"Invalid file type: {basename}. Only .md files are allowed.",
            )
        if ".." in name or "/" in name or "\\" in name:
            raise ValidationError(
                ValidationReason.PATH_TRAVERSAL,
                f"Invalid filename: {basename}. Path traversal not allowed.",
            )
        sanitized.append(name)
    return tuple(sanitized)


def sanitize_disposition(value: str | None) -> str:
    if value is None or value == "":
        return DISPOSITIONS[0]
    if value not in DISPOSITIONS:
        raise ValidationError(
            ValidationReason.INVALID_ENUM,
            'Invalid "download" parameter. Must be "inline" or "attachment".',
        )
    return value


def sanitize_metadata(
    *,
    title: str | None = None,
    subtitle: str | None = None,
    author: str | None = None,
    date: str | None = None,
    today: date_type | None = None,
) -> Metadata:
    return Metadata(
        title=sanitize_string(title, "Document"),
        subtitle=sanitize_string(subtitle, ""),
        author=sanitize_string(author, ""),
        date=sanitize_string(date, default_date(today)),
    )


def new_request_token(prefix: str = "req") -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def sanitize_token(token: str | None) -> str:
    cleaned = _TOKEN_UNSAFE.sub("", token or "")[:64]
    return cleaned or new_request_token()


def sanitize_request(
    docs: object,
    *,
    title: str | None = None,
    subtitle: str | None = None,
    author: str | None = None,
    date: str | None = None,
    disposition: str | None = None,
    request_token: str | None = None,
    today: date_type | None = None,
) -> GenerationRequest:
    """Validate raw front-end parameters into a :class:`GenerationRequest`.

    Raises :class:`ValidationError` with the matching reason for an empty
    document list, a non-Markdown name, a path traversal attempt or an
    unknown disposition.
    """
    return GenerationRequest(
        docs=sanitize_docs(docs),
        metadata=sanitize_metadata(title=title, subtitle=subtitle, author=author, date=date, today=today),
        request_token=sanitize_token(request_token),
        disposition=sanitize_disposition(disposition),
    )
