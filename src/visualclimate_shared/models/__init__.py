"""
visualclimate_shared.models — Pydantic models matching each store table.

All models provide:
  .from_db_row(row: dict) -> Model
  .to_insert_dict() -> dict
"""

from visualclimate_shared.models.countries import CountryRecord
from visualclimate_shared.models.indicators import IndicatorDefinition, ObservedValue

__all__ = [
    "CountryRecord",
    "IndicatorDefinition",
    "ObservedValue",
]
