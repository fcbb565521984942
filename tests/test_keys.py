"""Tests for cache key derivation, artifact naming and metadata descriptors."""

import re

import pytest
import yaml

from doccraft.generation.errors import ArtifactIOError
from doccraft.generation.descriptor import render_descriptor, write_descriptor
from doccraft.generation.keys import CACHE_KEY_LENGTH, artifact_filename, derive_cache_key
from doccraft.generation.models import Metadata


BASE_DOCS = ("01-intro.md", "02-guide.md")
BASE_META = Metadata(title="Demo", subtitle="Sub", author="Ada", date="October 18, 2026")


class TestDeriveCacheKey:
    def test_fixed_length_hex(self):
        key = derive_cache_key(BASE_DOCS, BASE_META)
        assert re.fullmatch(rf"[0-9a-f]{{{CACHE_KEY_LENGTH}}}", key)

    def test_deterministic(self):
        assert derive_cache_key(BASE_DOCS, BASE_META) == derive_cache_key(list(BASE_DOCS), Metadata(**BASE_META.as_dict()))

    @pytest.mark.parametrize("field", ["title", "subtitle", "author", "date"])
    def test_each_metadata_field_changes_key(self, field):
        changed = Metadata(**{**BASE_META.as_dict(), field: "something else"})
        assert derive_cache_key(BASE_DOCS, changed) != derive_cache_key(BASE_DOCS, BASE_META)

    def test_document_order_changes_key(self):
        assert derive_cache_key(BASE_DOCS[::-1], BASE_META) != derive_cache_key(BASE_DOCS, BASE_META)

    def test_document_list_changes_key(self):
        assert derive_cache_key(BASE_DOCS[:1], BASE_META) != derive_cache_key(BASE_DOCS, BASE_META)

    def test_field_boundaries_are_unambiguous(self):
        a = Metadata(title="ab", subtitle="c")
        b = Metadata(title="a", subtitle="bc")
        assert derive_cache_key(BASE_DOCS, a) != derive_cache_key(BASE_DOCS, b)

    def test_no_collisions_across_corpus(self):
        keys = {
            derive_cache_key((f"{i:02d}-doc.md",), Metadata(title=f"Title {j}"))
            for i in range(40)
            for j in range(40)
        }
        assert len(keys) == 1600


def test_artifact_filename_sanitizes_title():
    assert artifact_filename("0123456789abcdef", "My Doc: v2!") == "My_Doc__v2__0123456789abcdef.pdf"


class TestDescriptor:
    def test_front_matter_block(self):
        text = render_descriptor(BASE_META)
        assert text.startswith("---\n")
        assert text.endswith("---\n\n")
        assert yaml.safe_load(text.strip().strip("-")) == BASE_META.as_dict()

    def test_empty_fields_omitted(self):
        text = render_descriptor(Metadata(title="Demo", date="today"))
        assert "subtitle" not in text
        assert "author" not in text
        assert list(yaml.safe_load(text.strip().strip("-"))) == ["title", "date"]

    def test_unicode_kept(self):
        assert "Zoë" in render_descriptor(Metadata(title="Zoë"))

    def test_write_is_per_token(self, tmp_path):
        a = write_descriptor(BASE_META, tmp_path, "req_a")
        b = write_descriptor(BASE_META, tmp_path, "req_b")
        assert a != b
        assert a.read_text(encoding="utf-8") == render_descriptor(BASE_META)

    def test_write_never_overwrites(self, tmp_path):
        write_descriptor(BASE_META, tmp_path, "req_a")
        with pytest.raises(ArtifactIOError):
            write_descriptor(BASE_META, tmp_path, "req_a")

    def test_write_to_missing_directory(self, tmp_path):
        with pytest.raises(ArtifactIOError):
            write_descriptor(BASE_META, tmp_path / "nope", "req_a")
