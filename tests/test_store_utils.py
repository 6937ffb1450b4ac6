"""Tests for file name, locator, base64 and password helpers."""

from __future__ import annotations

import threading

import pytest
from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher

from cratehub.store import utils
from cratehub.store.utils import (
    build_embedding_text,
    build_search_field,
    decode_base64,
    effective_file_name,
    encode_base64,
    file_extension,
    hash_password,
    sanitize_file_name,
    storage_path_for,
)


class TestNames:
    def test_file_extension(self) -> None:
        assert file_extension("notes.MD") == "md"
        assert file_extension("archive.tar.gz") == "gz"
        assert file_extension("Makefile") == ""

    def test_sanitize_strips_separators_and_wildcards(self) -> None:
        assert sanitize_file_name('a/b\\c*d?e"f<g>h|i:j') == "abcdefghij"

    def test_sanitize_collapses_whitespace(self) -> None:
        assert sanitize_file_name("  my   report   final ") == "my report final"

    def test_sanitize_strips_control_chars(self) -> None:
        assert sanitize_file_name("bad\x00name\x1f") == "badname"

    def test_effective_name_prefers_file_name(self) -> None:
        assert effective_file_name("data.json", "Title", ".md") == "data.json"

    def test_effective_name_from_title(self) -> None:
        assert effective_file_name("", "Weekly / Report", ".md") == "Weekly Report.md"

    def test_effective_name_blank_title(self) -> None:
        assert effective_file_name("  ", "***", "txt") == "crate.txt"

    def test_storage_path_quotes_name(self) -> None:
        assert storage_path_for("abc", "my file.txt") == "uploads/abc/my%20file.txt"


class TestBase64:
    def test_round_trip(self) -> None:
        assert decode_base64(encode_base64(b"\x00\xffbytes")) == b"\x00\xffbytes"

    def test_invalid_base64_raises(self) -> None:
        with pytest.raises(ValueError, match="not valid base64"):
            decode_base64("!!!not-base64!!!")


class TestSearchText:
    def test_search_field_is_lowercase_concatenation(self) -> None:
        field = build_search_field("Quarterly Report", "Q3 Numbers", ["Finance"], {"team": "Ops"})
        assert field == "quarterly report q3 numbers finance ops"

    def test_search_field_empty(self) -> None:
        assert build_search_field(None, None, None, None) == ""

    def test_embedding_text_includes_metadata_keys(self) -> None:
        text = build_embedding_text("T", None, ["a", "b"], {"k": "v"})
        assert text == "T a b k: v"


class TestPasswords:
    async def test_hash_verifies_with_bcrypt(self) -> None:
        encoded = await hash_password("s3cret")
        assert encoded.startswith("$2b$")
        hasher = PasswordHash((BcryptHasher(),))
        assert hasher.verify("s3cret", encoded)
        assert not hasher.verify("wrong", encoded)

    async def test_hashes_are_salted(self) -> None:
        assert await hash_password("same") != await hash_password("same")

    async def test_hashing_runs_off_the_event_loop(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        threads: list[int] = []

        class RecordingHasher:
            def hash(self, password: str) -> str:
                threads.append(threading.get_ident())
                return f"hashed:{password}"

        monkeypatch.setattr(utils, "_password_hash", RecordingHasher())
        assert await hash_password("pw") == "hashed:pw"
        assert threads
        assert threads[0] != threading.get_ident()
