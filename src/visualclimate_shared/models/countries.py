"""
models/countries.py — Pydantic model for the countries reference table.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_validator


class CountryRecord(BaseModel):
    """Matches the countries table row. Read-only for the pipeline."""

    iso3: str
    name: str
    region: str | None = None

    @field_validator("iso3")
    @classmethod
    def upper_iso3(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"not an ISO 3166-1 alpha-3 code: {v!r}")
        return v

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "CountryRecord":
        return cls(**row)

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
