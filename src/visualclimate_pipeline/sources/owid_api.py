"""
sources/owid_api.py — Our World in Data grapher indicator API adapter.

Endpoints:
  GET /v1/indicators/{id}.data.json      → {"values": [...], "years": [...], "entities": [...]}
  GET /v1/indicators/{id}.metadata.json  → {"dimensions": {"entities": {"values":
                                              [{"id": 13, "name": "Korea", "code": "KOR"}, ...]}}}

The three arrays in the data payload are parallel. Entity ids are resolved
to ISO3 codes through the metadata payload; entities without a 3-letter
code (continents, income groups, "World") are dropped.

Used as the last fallback for urban population share (indicator 1145573).
"""

from __future__ import annotations

from typing import Any

import polars as pl

from visualclimate_shared.config import settings
from visualclimate_shared.errors import ParseError
from visualclimate_pipeline.sources.base import BaseSource, empty_series
from visualclimate_pipeline.utils.retry import RetryPolicy

URBAN_SHARE_INDICATOR_ID = 1145573


class OWIDGrapherSource(BaseSource):
    """One OWID grapher indicator, addressed by its numeric id."""

    name = "OWID_API"

    def __init__(
        self,
        indicator_id: int,
        *,
        base_url: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(name=name, retry_policy=retry_policy, timeout=timeout)
        self.indicator_id = indicator_id
        self._base_url = (base_url or settings.owid_api_base_url).rstrip("/")

    def get_metadata(self) -> dict[str, Any]:
        return {**super().get_metadata(), "indicator_id": self.indicator_id}

    def _entity_codes(self, metadata: Any) -> dict[int, str]:
        try:
            entities = metadata["dimensions"]["entities"]["values"]
        except (KeyError, TypeError) as exc:
            raise ParseError(self.name, "metadata has no dimensions.entities.values") from exc
        return {
            int(e["id"]): e["code"]
            for e in entities
            if isinstance(e, dict) and e.get("id") is not None and e.get("code")
        }

    async def extract(self, indicator: str, year_range: tuple[int, int]) -> pl.DataFrame:
        base = f"{self._base_url}/indicators/{self.indicator_id}"
        async with self._client() as client:
            data = await self._get_json(client, f"{base}.data.json")
            metadata = await self._get_json(client, f"{base}.metadata.json")

        if not isinstance(data, dict):
            raise ParseError(self.name, "data payload is not an object")
        values = data.get("values")
        years = data.get("years")
        entities = data.get("entities")
        if not isinstance(values, list) or not isinstance(years, list) or not isinstance(entities, list):
            raise ParseError(self.name, "data payload is missing values/years/entities")
        if not (len(values) == len(years) == len(entities)):
            raise ParseError(
                self.name,
                f"values/years/entities lengths differ ({len(values)}/{len(years)}/{len(entities)})",
            )

        codes = self._entity_codes(metadata)
        self._log.debug("owid_api_entities", indicator_id=self.indicator_id, entities=len(codes))

        return pl.DataFrame(
            {
                "entity_code": [codes.get(e) for e in entities],
                "year": years,
                "value": values,
            },
            schema={"entity_code": pl.String, "year": pl.Int64, "value": pl.Float64},
            strict=False,
        )

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        if raw.is_empty():
            return empty_series()
        return raw.rename({"entity_code": "country_iso3"}).select(["country_iso3", "year", "value"])
