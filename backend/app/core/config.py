"""Runtime configuration helpers.

Classes:
    Settings: Pydantic settings model capturing environment-driven defaults.

Functions:
    get_settings(): Return a cached Settings instance for dependency injection.
"""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Participant Atlas API"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./data/participant_atlas.db"
    openai_api_key: SecretStr | None = None
    openai_embedding_model: str = "text-embedding-3-small"
    openai_embedding_fallback_model: str = "text-embedding-3-small"
    openai_insight_model: str = "gpt-4o-mini"
    openai_max_attempts: int = 3
    embedding_dimensions: int = 1536
    insight_temperature: float = 0.3
    participants_namespace: str = "participants"
    rag_chunk_max_words: int = 120
    search_default_limit: int = 10
    search_max_limit: int = 50
    search_chunk_context: int = 1
    embedding_batch_size: int = 50
    umap_min_participants: int = 5
    umap_cache_chunk_size: int = 100
    umap_max_neighbors: int = 15
    umap_visual_min_dist: float = 0.3
    umap_visual_spread: float = 2.0
    umap_clustering_components: int = 50
    umap_clustering_min_dist: float = 0.1
    umap_clustering_spread: float = 2.0
    umap_seed: int | None = None
    hdbscan_default_min_cluster_size: int = 5
    hdbscan_default_min_samples: int = 3
    allow_2d_cluster_fallback: bool = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
