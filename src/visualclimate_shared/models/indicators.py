"""
models/indicators.py — Pydantic models for the indicators and country_data tables.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class IndicatorDefinition(BaseModel):
    """
    Matches the indicators table row.

    Catalog entries are created once and only ever updated to backfill
    missing metadata; the pipeline never deletes them.
    """

    model_config = ConfigDict(frozen=True)

    code: str                        # e.g. "EN.GHG.CO2.PC.CE.AR5", "REPORT.TOTAL_SCORE"
    name: str
    unit: str | None = None
    source: str | None = None        # "World Bank WDI", "OWID", "VisualClimate derived"
    category: str | None = None      # "emissions", "energy", "economy", ...

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "IndicatorDefinition":
        return cls(**{k: row.get(k) for k in ("code", "name", "unit", "source", "category")})

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ObservedValue(BaseModel):
    """
    Matches the country_data table row.

    Primary key is (country_iso3, indicator_code, year). Values are always
    finite; missing upstream values are dropped, never stored as null.
    """

    country_iso3: str
    indicator_code: str
    year: int
    value: float
    source: str

    @field_validator("value")
    @classmethod
    def finite_value(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "ObservedValue":
        return cls(**row)

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()
