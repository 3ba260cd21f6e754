# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: All tunables of the query engine live in one
# `BaseSettings` class. Chunk window sizes, scorer weights and the optional
# outlier trimming thresholds are read from the environment (or a .env file)
# so they can be adjusted per deployment without code changes.
#
# Priority order (highest first):
#   1. Environment variables (e.g., `RETRIEVAL_TOP_K=8`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from docquery.config import settings
#   print(settings.tabular_rows_per_chunk)
# =============================================================================

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults reproduce the behaviour the engine was tuned with; override
    them via environment variables or a .env file.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Document Query Service"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Document store
    # -------------------------------------------------------------------------
    # Only the SQL-backed provider reads this. SQLite keeps local development
    # free of external services; any SQLAlchemy sync URL works.
    # -------------------------------------------------------------------------
    database_url: str = "sqlite:///data/docquery.db"
    document_provider: str = "sql"  # "sql", or "memory" for an empty per-process store

    # -------------------------------------------------------------------------
    # Chunking
    # -------------------------------------------------------------------------
    # Tabular windows are counted in data rows, everything else in characters.
    # -------------------------------------------------------------------------
    tabular_rows_per_chunk: int = 10
    tabular_overlap_rows: int = 2
    tabular_summary_samples: int = 10
    code_chunk_max_chars: int = 1500
    markdown_section_max_chars: int = 2000
    prose_chunk_size: int = 1000
    prose_chunk_overlap: int = 200
    prose_min_chunk: int = 200

    # -------------------------------------------------------------------------
    # Retrieval / Relevance Scorer
    # -------------------------------------------------------------------------
    # Component weights of the weighted total. They need not sum to 1.0 but
    # must be non-negative.
    # -------------------------------------------------------------------------
    retrieval_top_k: int = 5
    context_max_tokens: int = 2000
    weight_keyword: float = 0.40
    weight_date: float = 0.25
    weight_number: float = 0.15
    weight_semantic: float = 0.10
    weight_metadata: float = 0.10

    # -------------------------------------------------------------------------
    # Query execution
    # -------------------------------------------------------------------------
    # Numeric dates such as 03/04/2024 are ambiguous; day-first matches the
    # documents this engine was built for.
    #
    # The outlier filter is an optional IQR trim over the values of sum/avg
    # when the spread looks suspicious (max > min * ratio, or
    # range > mean * range_to_mean). Disabled unless explicitly enabled.
    # -------------------------------------------------------------------------
    date_day_first: bool = True
    outlier_filter_enabled: bool = False
    outlier_ratio_threshold: float = 100.0
    outlier_range_to_mean_threshold: float = 10.0
    outlier_iqr_multiplier: float = 1.5
    outlier_min_remaining: int = 3

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_windows(self) -> "Settings":
        if self.tabular_rows_per_chunk < 1:
            raise ValueError("tabular_rows_per_chunk must be at least 1")
        if not 0 <= self.tabular_overlap_rows < self.tabular_rows_per_chunk:
            raise ValueError(
                "tabular_overlap_rows must be in [0, tabular_rows_per_chunk)"
            )
        if not 0 <= self.prose_chunk_overlap < self.prose_chunk_size:
            raise ValueError("prose_chunk_overlap must be in [0, prose_chunk_size)")
        weights = (
            self.weight_keyword, self.weight_date, self.weight_number,
            self.weight_semantic, self.weight_metadata,
        )
        if any(w < 0 for w in weights):
            raise ValueError("scorer weights must be non-negative")
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, override with FastAPI's dependency_overrides or pass explicit
    values to the functions that accept them.
    """
    return Settings()


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
settings = get_settings()
