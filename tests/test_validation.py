"""Tests for request sanitization: docs list, metadata, disposition, tokens."""

import locale
from datetime import date

import pytest

from doccraft.generation.errors import ValidationError, ValidationReason
from doccraft.generation.validation import (
    MAX_FIELD_LENGTH,
    default_date,
    sanitize_docs,
    sanitize_filename,
    sanitize_request,
    sanitize_string,
    sanitize_token,
)


# ---------------------------------------------------------------------------
# docs
# ---------------------------------------------------------------------------


class TestSanitizeDocs:
    def test_accepts_plain_markdown_name(self):
        assert sanitize_docs("01-intro.md") == ("01-intro.md",)

    def test_splits_trims_and_keeps_order(self):
        assert sanitize_docs(" 02-guide.md , 01-intro.md ,,") == ("02-guide.md", "01-intro.md")

    @pytest.mark.parametrize("raw", ["", "   ", ",, ,", None, 42])
    def test_empty_input_rejected(self, raw):
        with pytest.raises(ValidationError) as exc:
            sanitize_docs(raw)
        assert exc.value.reason is ValidationReason.EMPTY

    def test_path_traversal_rejected(self):
        with pytest.raises(ValidationError) as exc:
            sanitize_docs("../../etc/passwd.md")
        assert exc.value.reason is ValidationReason.PATH_TRAVERSAL

    def test_windows_traversal_rejected(self):
        with pytest.raises(ValidationError) as exc:
            sanitize_docs("..\\secrets\\notes.md")
        assert exc.value.reason is ValidationReason.PATH_TRAVERSAL

    def test_double_dot_inside_name_rejected(self):
        with pytest.raises(ValidationError) as exc:
            sanitize_docs("a..b.md")
        assert exc.value.reason is ValidationReason.PATH_TRAVERSAL

    def test_wrong_extension_rejected(self):
        with pytest.raises(ValidationError) as exc:
            sanitize_docs("notes.txt")
        assert exc.value.reason is ValidationReason.INVALID_EXTENSION
        assert "notes.txt" in exc.value.detail

    def test_one_bad_entry_fails_whole_list(self):
        with pytest.raises(ValidationError):
            sanitize_docs("01-intro.md,notes.txt")

    def test_directory_component_is_stripped(self):
        assert sanitize_docs("chapters/01-intro.md") == ("01-intro.md",)

    def test_unsafe_characters_removed(self):
        assert sanitize_docs('in*tro?"|.md') == ("intro.md",)


class TestSanitizeFilename:
    def test_reserved_dot_names(self):
        assert sanitize_filename("..") == ""

    def test_windows_device_names(self):
        assert sanitize_filename("CON.md") == ""

    def test_trailing_dots_and_spaces(self):
        assert sanitize_filename("guide.md. ") == "guide.md"


# ---------------------------------------------------------------------------
# metadata
# ---------------------------------------------------------------------------


class TestSanitizeString:
    def test_strips_markup_characters(self):
        assert sanitize_string("<b>Tom & \"Jerry's\"</b>") == "bTom  Jerrys/b"

    def test_collapses_newlines_and_tabs(self):
        assert sanitize_string("line one\nline\ttwo\r") == "line one line two"

    def test_truncates(self):
        assert len(sanitize_string("x" * 500)) == MAX_FIELD_LENGTH

    def test_default_when_empty_after_cleaning(self):
        assert sanitize_string("<>&", "Document") == "Document"

    def test_default_for_non_string(self):
        assert sanitize_string(None, "fallback") == "fallback"


def test_default_date_format():
    assert default_date(date(2026, 10, 3)) == "October 3, 2026"


class TestSanitizeRequest:
    def test_defaults_applied(self):
        req = sanitize_request("01-intro.md", today=date(2026, 10, 18))
        assert req.metadata.title == "Document"
        assert req.metadata.subtitle == ""
        assert req.metadata.author == ""
        assert req.metadata.date == "October 18, 2026"
        assert req.disposition == "inline"
        assert req.request_token.startswith("req_")

    def test_attachment_disposition(self):
        assert sanitize_request("01-intro.md", disposition="attachment").disposition == "attachment"

    def test_invalid_disposition(self):
        with pytest.raises(ValidationError) as exc:
            sanitize_request("01-intro.md", disposition="download")
        assert exc.value.reason is ValidationReason.INVALID_ENUM

    def test_token_made_filesystem_safe(self):
        assert sanitize_request("01-intro.md", request_token="req/../1 2").request_token == "req12"


def test_sanitize_token_generates_when_blank():
    assert sanitize_token("///").startswith("req_")


def test_default_date_ignores_locale():
    saved = locale.setlocale(locale.LC_TIME)
    try:
        locale.setlocale(locale.LC_TIME, "de_DE.UTF-8")
    except locale.Error:
        pytest.skip("de_DE.UTF-8 locale not installed")
    try:
        assert default_date(date(2026, 3, 5)) == "March 5, 2026"
    finally:
        locale.setlocale(locale.LC_TIME, saved)
