"""
constants.py — shared constants used across the pipeline.

Store table names, the Report Card domain configuration, the grade table
and the reserved indicator codes are defined here so the scoring engine,
the derivations and the QA pass stay in sync.
"""

from __future__ import annotations

from typing import Final, Literal

# ---------------------------------------------------------------------------
# Store tables
# ---------------------------------------------------------------------------
COUNTRIES_TABLE: Final[str] = "countries"
INDICATORS_TABLE: Final[str] = "indicators"
OBSERVATIONS_TABLE: Final[str] = "country_data"

OBSERVATION_KEY: Final[list[str]] = ["country_iso3", "indicator_code", "year"]
INDICATOR_KEY: Final[list[str]] = ["code"]

# Canonical in-pipeline series columns
SERIES_COLUMNS: Final[list[str]] = ["country_iso3", "year", "value"]

ISO3_PATTERN: Final[str] = r"^[A-Z]{3}$"

# ---------------------------------------------------------------------------
# Provenance labels
# ---------------------------------------------------------------------------
SOURCE_NONE: Final[str] = "NONE"
DERIVED_SOURCE: Final[str] = "VisualClimate derived"
REPORT_SOURCE: Final[str] = "VisualClimate Report Card"

# ---------------------------------------------------------------------------
# Raw indicator codes referenced by derivations and scoring
# ---------------------------------------------------------------------------
CO2_PER_CAPITA: Final[str] = "EN.GHG.CO2.PC.CE.AR5"
GDP_PER_CAPITA: Final[str] = "NY.GDP.PCAP.CD"
GDP_TOTAL: Final[str] = "NY.GDP.MKTP.CD"
GHG_TOTAL_KT: Final[str] = "EN.ATM.GHGT.KT.CE"
POPULATION: Final[str] = "SP.POP.TOTL"
URBAN_SHARE: Final[str] = "SP.URB.TOTL.IN.ZS"
RENEWABLE_CONSUMPTION: Final[str] = "EG.FEC.RNEW.ZS"
RENEWABLE_ELEC_SHARE: Final[str] = "EMBER.RENEWABLE.PCT"
FOSSIL_ELEC_SHARE: Final[str] = "EMBER.FOSSIL.PCT"
CARBON_INTENSITY_ELEC: Final[str] = "EMBER.CARBON.INTENSITY"
SHARE_CUMULATIVE_CO2: Final[str] = "OWID.SHARE_GLOBAL_CUMULATIVE_CO2"
NDGAIN_READINESS: Final[str] = "NDGAIN.READINESS"
NDGAIN_VULNERABILITY: Final[str] = "NDGAIN.VULNERABILITY"

# ---------------------------------------------------------------------------
# Derived indicator codes
# ---------------------------------------------------------------------------
DERIVED_CO2_PER_GDP: Final[str] = "DERIVED.CO2_PER_GDP"
DERIVED_DECOUPLING: Final[str] = "DERIVED.DECOUPLING"
DERIVED_EMISSIONS_INTENSITY: Final[str] = "DERIVED.EMISSIONS_INTENSITY"
DERIVED_CLIMATE_CLASS: Final[str] = "DERIVED.CLIMATE_CLASS"

DECOUPLING_BASE_YEAR: Final[int] = 2010
CLIMATE_CLASS_YEAR: Final[int] = 2023

# CLIMATE_CLASS values
CLIMATE_CHANGER: Final[int] = 1
CLIMATE_STARTER: Final[int] = 2
CLIMATE_TALKER: Final[int] = 3

# ---------------------------------------------------------------------------
# Report Card
# ---------------------------------------------------------------------------
Direction = Literal["forward", "inverse"]

SCORE_YEAR: Final[int] = 2024

# Domain name -> weight in the total score
DOMAIN_WEIGHTS: Final[dict[str, float]] = {
    "EMISSIONS": 0.30,
    "ENERGY": 0.25,
    "ECONOMY": 0.15,
    "RESPONSIBILITY": 0.15,
    "RESILIENCE": 0.15,
}

# Domain name -> [(indicator_code, direction, weight)]; weights sum to 1.0
DOMAIN_INDICATORS: Final[dict[str, list[tuple[str, Direction, float]]]] = {
    "EMISSIONS": [
        (CO2_PER_CAPITA, "inverse", 0.5),
        (DERIVED_CO2_PER_GDP, "inverse", 0.3),
        (DERIVED_DECOUPLING, "forward", 0.2),
    ],
    "ENERGY": [
        (RENEWABLE_ELEC_SHARE, "forward", 0.6),
        (CARBON_INTENSITY_ELEC, "inverse", 0.4),
    ],
    "ECONOMY": [
        (GDP_PER_CAPITA, "forward", 0.5),
        (DERIVED_CO2_PER_GDP, "inverse", 0.5),
    ],
    "RESPONSIBILITY": [
        (SHARE_CUMULATIVE_CO2, "inverse", 1.0),
    ],
    "RESILIENCE": [
        (NDGAIN_READINESS, "forward", 0.6),
        (NDGAIN_VULNERABILITY, "inverse", 0.4),
    ],
}

DOMAIN_SCORE_CODES: Final[dict[str, str]] = {
    domain: f"REPORT.{domain}_SCORE" for domain in DOMAIN_WEIGHTS
}
TOTAL_SCORE_CODE: Final[str] = "REPORT.TOTAL_SCORE"
GRADE_CODE: Final[str] = "REPORT.GRADE"
REPORT_CODES: Final[list[str]] = [
    *DOMAIN_SCORE_CODES.values(),
    TOTAL_SCORE_CODE,
    GRADE_CODE,
]

# A domain is scored only when at least this share of its weight is present
MIN_DOMAIN_WEIGHT_FRACTION: Final[float] = 0.5
# A total is scored only when at least this many domains are present
MIN_DOMAINS_FOR_TOTAL: Final[int] = 3

# (minimum total, letter, numeric) scanned high -> low, inclusive lower bound
GRADE_THRESHOLDS: Final[list[tuple[float, str, int]]] = [
    (90.0, "A+", 7),
    (80.0, "A", 6),
    (70.0, "B+", 5),
    (60.0, "B", 4),
    (50.0, "C+", 3),
    (40.0, "C", 2),
    (25.0, "D", 1),
    (0.0, "F", 0),
]

NUMERIC_TO_LETTER: Final[dict[int, str]] = {n: letter for _, letter, n in GRADE_THRESHOLDS}

QACheckStatus = Literal["PASS", "WARN", "FAIL"]
