"""Tests for environment-driven settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cratehub.config import Settings

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        settings = Settings()
        assert settings.database_url == "sqlite+aiosqlite:///cratehub.db"
        assert settings.share_base_url == "https://mcph.io"
        assert settings.upload_url_ttl_seconds == 900
        assert settings.list_window_days == 30
        assert settings.signing_key == ""
        assert settings.openai_api_key == ""
        assert settings.vector_index_dir == "./search_index"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CRATEHUB_SIGNING_KEY", "s3cret")
        monkeypatch.setenv("CRATEHUB_TOOL_CALL_LIMIT", "5")
        monkeypatch.setenv("CRATEHUB_DATABASE_ECHO", "true")
        settings = Settings()
        assert settings.signing_key == "s3cret"
        assert settings.tool_call_limit == 5
        assert settings.database_echo is True

    def test_dotenv_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("CRATEHUB_LIST_LIMIT=7\nUNRELATED=1\n")
        assert Settings().list_limit == 7

    def test_init_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        settings = Settings(blob_root=str(tmp_path / "b"), search_top_k=3)
        assert settings.blob_root == str(tmp_path / "b")
        assert settings.search_top_k == 3
