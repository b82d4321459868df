"""
transforms/scoring.py — Normalization and weighted scoring for the Report Card.

Stages, each a pure function over polars frames:

  1. latest_values      latest value per (country, indicator) at year ≤ score year
  2. normalize          global min–max per indicator → 0..100 (degenerate range → 50)
  3. indicator_scores   apply direction per (domain, indicator): inverse → 100 - normalized
  4. domain_scores      Σ(score·w) / Σ(w available), only when available weight
                        ≥ 50% of the domain's configured weight
  5. score_countries    total = Σ(domain·dw) / Σ(dw present), needs ≥ 3 domains,
                        rounded half-up to one decimal, mapped to a grade

Normalization is recomputed over every country on each run: one country's
new value can move every other country's score.

Usage:
    result = score_countries(observations, score_year=2024)
    rows = score_rows(result.scores, score_year=2024)   # REPORT.* rows
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import polars as pl
import structlog

from visualclimate_shared.constants import (
    DOMAIN_INDICATORS,
    DOMAIN_SCORE_CODES,
    DOMAIN_WEIGHTS,
    GRADE_CODE,
    GRADE_THRESHOLDS,
    MIN_DOMAIN_WEIGHT_FRACTION,
    MIN_DOMAINS_FOR_TOTAL,
    REPORT_SOURCE,
    TOTAL_SCORE_CODE,
    Direction,
)

if TYPE_CHECKING:
    from visualclimate_pipeline.loaders.supabase_loader import LoadResult

log = structlog.get_logger(__name__)

# Float tolerance for the weight-coverage comparison (0.3 + 0.2 vs 0.5)
WEIGHT_EPSILON = 1e-9


@dataclass(frozen=True)
class IndicatorWeight:
    code: str
    direction: Direction
    weight: float


@dataclass(frozen=True)
class DomainConfig:
    name: str
    weight: float
    indicators: tuple[IndicatorWeight, ...]

    @property
    def total_indicator_weight(self) -> float:
        return sum(i.weight for i in self.indicators)


DEFAULT_DOMAINS: tuple[DomainConfig, ...] = tuple(
    DomainConfig(
        name=name,
        weight=DOMAIN_WEIGHTS[name],
        indicators=tuple(IndicatorWeight(c, d, w) for c, d, w in DOMAIN_INDICATORS[name]),
    )
    for name in DOMAIN_WEIGHTS
)


def scored_indicator_codes(domains: Sequence[DomainConfig] = DEFAULT_DOMAINS) -> list[str]:
    """Every indicator code any domain reads, deduplicated, in config order."""
    return list(dict.fromkeys(i.code for d in domains for i in d.indicators))


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def round_half_up(value: float, decimals: int = 1) -> float:
    """Round with halves going up: 74.95 → 75.0, -0.05 → 0.0."""
    factor = 10**decimals
    return math.floor(value * factor + 0.5) / factor


def to_grade(
    total: float,
    thresholds: Sequence[tuple[float, str, int]] = GRADE_THRESHOLDS,
) -> tuple[str, int]:
    """
    Map a total score to (letter, numeric) by scanning thresholds from the
    highest minimum down; the lower bound is inclusive (70.0 → B+).
    """
    for minimum, letter, numeric in sorted(thresholds, key=lambda t: t[0], reverse=True):
        if total >= minimum:
            return letter, numeric
    _, letter, numeric = min(thresholds, key=lambda t: t[0])
    return letter, numeric


# ---------------------------------------------------------------------------
# Frame stages
# ---------------------------------------------------------------------------


def latest_values(observations: pl.DataFrame, score_year: int) -> pl.DataFrame:
    """
    Latest finite value per (country_iso3, indicator_code) with year ≤ score_year.

    Years are scanned newest first and the first match wins.
    """
    return (
        observations.filter(
            (pl.col("year") <= score_year)
            & pl.col("value").is_not_null()
            & pl.col("value").is_finite()
        )
        .sort("year", descending=True, maintain_order=True)
        .unique(subset=["country_iso3", "indicator_code"], keep="first", maintain_order=True)
        .select(["country_iso3", "indicator_code", "year", "value"])
    )


def normalize(latest: pl.DataFrame) -> pl.DataFrame:
    """
    Add a ``normalized`` column: (value - min) / (max - min) * 100 with min
    and max taken per indicator across all countries; 50 when max == min.
    """
    lo = pl.col("value").min().over("indicator_code")
    hi = pl.col("value").max().over("indicator_code")
    return latest.with_columns(
        pl.when(hi == lo)
        .then(pl.lit(50.0))
        .otherwise((pl.col("value") - lo) / (hi - lo) * 100)
        .alias("normalized")
    )


def _domain_config_frame(domains: Sequence[DomainConfig]) -> pl.DataFrame:
    return pl.DataFrame(
        [
            {
                "domain": d.name,
                "indicator_code": i.code,
                "direction": i.direction,
                "weight": i.weight,
            }
            for d in domains
            for i in d.indicators
        ],
        schema={
            "domain": pl.String,
            "indicator_code": pl.String,
            "direction": pl.String,
            "weight": pl.Float64,
        },
    )


def indicator_scores(
    normalized: pl.DataFrame,
    domains: Sequence[DomainConfig] = DEFAULT_DOMAINS,
) -> pl.DataFrame:
    """
    One row per (country, domain, indicator) with the directional score.

    The same indicator may appear in several domains with its own direction
    and weight in each.
    """
    return normalized.join(_domain_config_frame(domains), on="indicator_code", how="inner").select(
        "country_iso3",
        "domain",
        "indicator_code",
        "weight",
        pl.when(pl.col("direction") == "inverse")
        .then(100.0 - pl.col("normalized"))
        .otherwise(pl.col("normalized"))
        .alias("score"),
    )


def domain_scores(
    scores: pl.DataFrame,
    domains: Sequence[DomainConfig] = DEFAULT_DOMAINS,
    *,
    min_weight_fraction: float = MIN_DOMAIN_WEIGHT_FRACTION,
) -> pl.DataFrame:
    """
    Weighted domain score per country, kept only when the available
    indicator weight reaches ``min_weight_fraction`` of the domain's total.

    Returns:
        DataFrame with country_iso3, domain, score (unrounded), available_weight.
    """
    totals = pl.DataFrame(
        {
            "domain": [d.name for d in domains],
            "configured_weight": [d.total_indicator_weight for d in domains],
        }
    )
    return (
        scores.group_by(["country_iso3", "domain"])
        .agg(
            (pl.col("score") * pl.col("weight")).sum().alias("weighted"),
            pl.col("weight").sum().alias("available_weight"),
        )
        .join(totals, on="domain", how="inner")
        .filter(
            pl.col("available_weight") + WEIGHT_EPSILON
            >= pl.col("configured_weight") * min_weight_fraction
        )
        .select(
            "country_iso3",
            "domain",
            (pl.col("weighted") / pl.col("available_weight")).alias("score"),
            "available_weight",
        )
        .sort(["country_iso3", "domain"])
    )


# ---------------------------------------------------------------------------
# Country results
# ---------------------------------------------------------------------------


@dataclass
class CountryScore:
    """Report Card outcome for one country."""

    country_iso3: str
    domains: dict[str, float] = field(default_factory=dict)     # unrounded
    missing_domains: list[str] = field(default_factory=list)
    total: float | None = None                                  # rounded, 1 decimal
    grade: str | None = None
    grade_numeric: int | None = None

    @property
    def scored(self) -> bool:
        return self.total is not None

    @property
    def exclusion_reason(self) -> str | None:
        if self.scored:
            return None
        return (
            f"{len(self.domains)} of {len(self.domains) + len(self.missing_domains)} domains present"
            f" (missing {', '.join(self.missing_domains) or 'none'}); needs {MIN_DOMAINS_FOR_TOTAL}"
        )


@dataclass
class ScoringResult:
    score_year: int
    scores: list[CountryScore]
    # Set by the score stage once the rows are written
    load: LoadResult | None = None

    @property
    def scored(self) -> list[CountryScore]:
        return [s for s in self.scores if s.scored]

    @property
    def excluded(self) -> list[CountryScore]:
        return [s for s in self.scores if not s.scored]

    def grade_distribution(self) -> dict[str, int]:
        counts = Counter(s.grade for s in self.scored)
        return {letter: counts.get(letter, 0) for _, letter, _ in GRADE_THRESHOLDS}

    def ranking(self) -> list[CountryScore]:
        return sorted(self.scored, key=lambda s: (-(s.total or 0.0), s.country_iso3))

    def top(self, n: int = 10) -> list[CountryScore]:
        return self.ranking()[:n]

    def bottom(self, n: int = 10) -> list[CountryScore]:
        return list(reversed(self.ranking()))[:n]


def score_countries(
    observations: pl.DataFrame,
    score_year: int,
    *,
    domains: Sequence[DomainConfig] = DEFAULT_DOMAINS,
    countries: Iterable[str] | None = None,
    min_domains: int = MIN_DOMAINS_FOR_TOTAL,
) -> ScoringResult:
    """
    Run every scoring stage over the full observation table.

    Args:
        observations: country_iso3, indicator_code, year, value rows.
        score_year:   Latest year a value may come from.
        domains:      Domain configuration (weights, indicators, directions).
        countries:    The reference country set; every one of them gets a
                      CountryScore (scored or excluded). Normalization
                      still spans every country present in ``observations``.
        min_domains:  Domains required for a total score.
    """
    codes = scored_indicator_codes(domains)
    latest = latest_values(observations.filter(pl.col("indicator_code").is_in(codes)), score_year)
    per_domain = domain_scores(indicator_scores(normalize(latest), domains), domains)

    domain_weight = {d.name: d.weight for d in domains}
    domain_order = [d.name for d in domains]

    by_country: dict[str, dict[str, float]] = {}
    for iso3, domain, score, _ in per_domain.iter_rows():
        by_country.setdefault(iso3, {})[domain] = score

    if countries is not None:
        universe = set(countries)
    else:
        universe = set(latest["country_iso3"].to_list())

    results: list[CountryScore] = []
    for iso3 in sorted(universe):
        present = by_country.get(iso3, {})
        result = CountryScore(
            country_iso3=iso3,
            domains={d: present[d] for d in domain_order if d in present},
            missing_domains=[d for d in domain_order if d not in present],
        )
        if len(result.domains) >= min_domains:
            weight_sum = sum(domain_weight[d] for d in result.domains)
            raw_total = sum(s * domain_weight[d] for d, s in result.domains.items()) / weight_sum
            result.total = round_half_up(raw_total, 1)
            result.grade, result.grade_numeric = to_grade(result.total)
        results.append(result)

    log.debug(
        "scoring_complete",
        score_year=score_year,
        countries=len(results),
        scored=sum(1 for r in results if r.scored),
    )
    return ScoringResult(score_year=score_year, scores=results)


def score_rows(scores: Iterable[CountryScore], score_year: int) -> pl.DataFrame:
    """
    country_data rows for every scored country: each present domain score
    (rounded to one decimal), the total and the numeric grade. Countries
    without a total get no rows at all.
    """
    rows: list[dict[str, object]] = []
    for s in scores:
        if not s.scored:
            continue
        for domain, value in s.domains.items():
            rows.append(
                {
                    "country_iso3": s.country_iso3,
                    "indicator_code": DOMAIN_SCORE_CODES[domain],
                    "year": score_year,
                    "value": round_half_up(value, 1),
                }
            )
        rows.append(
            {
                "country_iso3": s.country_iso3,
                "indicator_code": TOTAL_SCORE_CODE,
                "year": score_year,
                "value": s.total,
            }
        )
        rows.append(
            {
                "country_iso3": s.country_iso3,
                "indicator_code": GRADE_CODE,
                "year": score_year,
                "value": float(s.grade_numeric or 0),
            }
        )

    return pl.DataFrame(
        rows,
        schema={
            "country_iso3": pl.String,
            "indicator_code": pl.String,
            "year": pl.Int64,
            "value": pl.Float64,
        },
    ).with_columns(pl.lit(REPORT_SOURCE).alias("source"))
