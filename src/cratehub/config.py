"""Configuration settings for cratehub."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from ``CRATEHUB_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="CRATEHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///cratehub.db"
    database_echo: bool = False

    # Blob storage
    blob_root: str = "./blobs"
    public_base_url: str = "http://localhost:8080/blobs"  # base of signed blob URLs
    share_base_url: str = "https://mcph.io"  # base of human-facing crate links
    signing_key: str = ""  # required for any signed URL
    upload_url_ttl_seconds: int = 15 * 60
    max_upload_bytes: int = 100 * 1024 * 1024

    # Semantic search (disabled without an API key)
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768
    openai_api_key: str = ""
    search_top_k: int = 5
    vector_index_dir: str = "./search_index"  # saved on close, loaded on open

    # Listing
    list_window_days: int = 30
    list_limit: int = 100

    # Quotas (advisory)
    tool_call_limit: int = 1000
    storage_limit_bytes: int = 500 * 1024 * 1024
