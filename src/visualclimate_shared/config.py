"""
config.py — pydantic-settings Settings class.

Every environment variable the pipeline reads is declared here.

Usage:
    from visualclimate_shared.config import settings
    print(settings.supabase_url, settings.score_year)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from visualclimate_shared.errors import ConfigurationError


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env (or .env.local) file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        for name in (".env", ".env.local"):
            candidate = parent / name
            if candidate.is_file():
                return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Supabase (canonical store)
    # -------------------------------------------------------------------------
    supabase_url: str = Field(
        default="",
        validation_alias=AliasChoices("supabase_url", "next_public_supabase_url"),
    )
    supabase_service_role_key: str = Field(default="")

    # -------------------------------------------------------------------------
    # DuckDB (download staging cache)
    # -------------------------------------------------------------------------
    duckdb_path: str = Field(default="./data/staging.duckdb")
    csv_cache_hours: float = Field(default=0.0)

    # -------------------------------------------------------------------------
    # Data sources
    # -------------------------------------------------------------------------
    worldbank_base_url: str = Field(default="https://api.worldbank.org/v2")
    climatetrace_base_url: str = Field(default="https://api.climatetrace.org/v7")
    owid_api_base_url: str = Field(default="https://api.ourworldindata.org/v1")
    climatewatch_base_url: str = Field(default="https://www.climatewatchdata.org/api/v1")
    owid_co2_csv_url: str = Field(
        default="https://owid-public.owid.io/data/co2/owid-co2-data.csv"
    )
    owid_energy_csv_url: str = Field(
        default="https://raw.githubusercontent.com/owid/energy-data/master/owid-energy-data.csv"
    )
    datasets_population_csv_url: str = Field(
        default="https://raw.githubusercontent.com/datasets/population/main/data/population.csv"
    )
    datasets_gdp_csv_url: str = Field(
        default="https://raw.githubusercontent.com/datasets/gdp/main/data/gdp.csv"
    )
    ndgain_dir: str = Field(default="./data/ndgain")

    # -------------------------------------------------------------------------
    # Run parameters
    # -------------------------------------------------------------------------
    year_start: int = Field(default=2000)
    year_end: int = Field(default=2023)
    score_year: int = Field(default=2024)
    fetch_concurrency: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=60.0)
    retry_attempts: int = Field(default=2, ge=1)
    retry_backoff_seconds: float = Field(default=3.0, ge=0)
    page_delay_seconds: float = Field(default=0.8, ge=0)
    upsert_batch_size: int = Field(default=500, ge=1)
    qa_null_threshold: float = Field(default=0.30, gt=0, le=1)
    analysis_dir: str = Field(default="./data/analysis")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator(
        "supabase_url",
        "worldbank_base_url",
        "climatetrace_base_url",
        "owid_api_base_url",
        "climatewatch_base_url",
        mode="before",
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v

    def require_store_credentials(self) -> None:
        """Raise ConfigurationError unless both store credentials are set."""
        missing = []
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_service_role_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set them in the environment or .env before running the pipeline."
            )


# ---------------------------------------------------------------------------
# Module-level singleton, import this everywhere
# ---------------------------------------------------------------------------
settings = Settings()
