"""
pipelines/catalog.py — The indicator catalog and its ingest plan.

Every ingested indicator is declared here once, with its catalog metadata
and the ordered list of adapters that can supply it. The list is built
when the run is configured; the fallback chain never inspects adapter
types at runtime.

Sources:
  World Bank WDI        EN.GHG.CO2.PC.CE.AR5, NY.GDP.PCAP.CD, EN.ATM.PM25.MC.M3,
                        AG.LND.FRST.ZS, EG.USE.PCAP.KG.OE
  WDI with fallbacks    SP.POP.TOTL        → datasets/population CSV
                        NY.GDP.MKTP.CD     → datasets/gdp CSV
                        EN.ATM.GHGT.KT.CE  → OWID CO2 CSV total_ghg × 1000
                                           → Climate Watch PIK total × 1000
                        EG.FEC.RNEW.ZS     → OWID energy CSV renewables_share_energy
                        SP.URB.TOTL.IN.ZS  → OWID grapher API indicator 1145573
  OWID CO2 CSV          OWID.* columns
  OWID energy CSV       EMBER.RENEWABLE.PCT, EMBER.FOSSIL.PCT, EMBER.CARBON.INTENSITY
  ND-GAIN local CSV     NDGAIN.VULNERABILITY, NDGAIN.READINESS
  Climate Watch API     CLIMATEWATCH.TOTAL_GHG
  Climate TRACE API     CTRACE.<SECTOR> (latest year only)

Usage:
    plan = build_ingest_plan(cache=DownloadCache(), retry_policy=RetryPolicy())
    for spec in plan:
        chain = spec.chain()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from visualclimate_shared.config import settings
from visualclimate_shared.constants import (
    CARBON_INTENSITY_ELEC,
    CLIMATE_CLASS_YEAR,
    CO2_PER_CAPITA,
    DECOUPLING_BASE_YEAR,
    DERIVED_CLIMATE_CLASS,
    DERIVED_CO2_PER_GDP,
    DERIVED_DECOUPLING,
    DERIVED_EMISSIONS_INTENSITY,
    DERIVED_SOURCE,
    DOMAIN_SCORE_CODES,
    FOSSIL_ELEC_SHARE,
    GDP_PER_CAPITA,
    GDP_TOTAL,
    GHG_TOTAL_KT,
    GRADE_CODE,
    NDGAIN_READINESS,
    NDGAIN_VULNERABILITY,
    POPULATION,
    RENEWABLE_CONSUMPTION,
    RENEWABLE_ELEC_SHARE,
    REPORT_SOURCE,
    TOTAL_SCORE_CODE,
    URBAN_SHARE,
)
from visualclimate_shared.models.indicators import IndicatorDefinition
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.sources.climatetrace import (
    CTRACE_TOTAL,
    SECTOR_INDICATOR_MAP,
    ClimateTraceSource,
)
from visualclimate_pipeline.sources.climatewatch import ClimateWatchSource
from visualclimate_pipeline.sources.csv_source import CSVSource
from visualclimate_pipeline.sources.fallback import FallbackChain
from visualclimate_pipeline.sources.owid_api import URBAN_SHARE_INDICATOR_ID, OWIDGrapherSource
from visualclimate_pipeline.sources.worldbank import WorldBankSource
from visualclimate_pipeline.utils.download_cache import DownloadCache
from visualclimate_pipeline.utils.retry import RetryPolicy

# Provenance labels
WDI = "WDI"
DATASETS = "GitHub/datasets"
OWID = "OWID"
OWID_CO2 = "OWID CO2"
EMBER = "Ember/OWID"
NDGAIN = "ND-GAIN"
CLIMATE_WATCH = "Climate Watch"

CLIMATEWATCH_TOTAL_GHG = "CLIMATEWATCH.TOTAL_GHG"

# (csv column, code, name, unit)
OWID_CO2_COLUMNS: list[tuple[str, str, str, str]] = [
    ("co2", "OWID.CO2", "Annual CO2 emissions", "Mt CO2"),
    ("co2_per_capita", "OWID.CO2_PER_CAPITA", "CO2 emissions per capita", "t CO2/person"),
    ("co2_per_gdp", "OWID.CO2_PER_GDP", "CO2 per unit GDP", "kg CO2 per $"),
    ("cumulative_co2", "OWID.CUMULATIVE_CO2", "Cumulative CO2 emissions", "Mt CO2"),
    ("share_global_co2", "OWID.SHARE_GLOBAL_CO2", "Share of global CO2 emissions", "%"),
    ("share_global_cumulative_co2", "OWID.SHARE_GLOBAL_CUMULATIVE_CO2", "Share of global cumulative CO2", "%"),
    ("consumption_co2", "OWID.CONSUMPTION_CO2", "Consumption-based CO2 emissions", "Mt CO2"),
    ("consumption_co2_per_capita", "OWID.CONSUMPTION_CO2_PER_CAPITA", "Consumption CO2 per capita", "t CO2/person"),
    ("co2_including_luc", "OWID.CO2_INCLUDING_LUC", "CO2 including land-use change", "Mt CO2"),
    ("methane", "OWID.METHANE", "Methane emissions", "Mt CO2e"),
    ("methane_per_capita", "OWID.METHANE_PER_CAPITA", "Methane emissions per capita", "t CO2e/person"),
    ("nitrous_oxide", "OWID.NITROUS_OXIDE", "Nitrous oxide emissions", "Mt CO2e"),
    ("nitrous_oxide_per_capita", "OWID.NITROUS_OXIDE_PER_CAPITA", "Nitrous oxide per capita", "t CO2e/person"),
    ("total_ghg", "OWID.TOTAL_GHG", "Total GHG emissions", "Mt CO2e"),
    ("total_ghg_excluding_lucf", "OWID.TOTAL_GHG_EXCLUDING_LUCF", "Total GHG excl. land-use change", "Mt CO2e"),
    ("ghg_per_capita", "OWID.GHG_PER_CAPITA", "GHG emissions per capita", "t CO2e/person"),
    ("temperature_change_from_co2", "OWID.TEMPERATURE_CHANGE_FROM_CO2", "Temperature change from CO2", "°C"),
    ("temperature_change_from_ghg", "OWID.TEMPERATURE_CHANGE_FROM_GHG", "Temperature change from GHGs", "°C"),
    ("temperature_change_from_ch4", "OWID.TEMPERATURE_CHANGE_FROM_CH4", "Temperature change from CH4", "°C"),
    ("temperature_change_from_n2o", "OWID.TEMPERATURE_CHANGE_FROM_N2O", "Temperature change from N2O", "°C"),
    ("coal_co2", "OWID.COAL_CO2", "CO2 from coal", "Mt CO2"),
    ("oil_co2", "OWID.OIL_CO2", "CO2 from oil", "Mt CO2"),
    ("gas_co2", "OWID.GAS_CO2", "CO2 from gas", "Mt CO2"),
    ("cement_co2", "OWID.CEMENT_CO2", "CO2 from cement", "Mt CO2"),
    ("flaring_co2", "OWID.FLARING_CO2", "CO2 from flaring", "Mt CO2"),
    ("energy_per_capita", "OWID.ENERGY_PER_CAPITA", "Energy consumption per capita", "kWh/person"),
    ("energy_per_gdp", "OWID.ENERGY_PER_GDP", "Energy consumption per unit GDP", "kWh/$"),
]

EMBER_COLUMNS: list[tuple[str, str, str, str]] = [
    ("renewables_share_elec", RENEWABLE_ELEC_SHARE, "Renewable share of electricity", "%"),
    ("fossil_share_elec", FOSSIL_ELEC_SHARE, "Fossil share of electricity", "%"),
    ("carbon_intensity_elec", CARBON_INTENSITY_ELEC, "Carbon intensity of electricity", "gCO2/kWh"),
]

CTRACE_NAMES: dict[str, str] = {
    "power": "Power sector emissions (Climate TRACE)",
    "manufacturing": "Manufacturing sector emissions (Climate TRACE)",
    "transportation": "Transportation sector emissions (Climate TRACE)",
    "agriculture": "Agriculture sector emissions (Climate TRACE)",
    "fossil_fuel_operations": "Fossil fuel operations emissions (Climate TRACE)",
    "buildings": "Buildings sector emissions (Climate TRACE)",
    "waste": "Waste sector emissions (Climate TRACE)",
    "forestry_and_land_use": "Forestry and land-use emissions (Climate TRACE)",
    "mineral_extraction": "Mineral extraction emissions (Climate TRACE)",
}


@dataclass
class IndicatorSpec:
    """One ingestable indicator: catalog entry plus ordered adapters."""

    definition: IndicatorDefinition
    adapters: list[BaseSource] = field(default_factory=list)
    year_range: tuple[int, int] | None = None

    @property
    def code(self) -> str:
        return self.definition.code

    def chain(self) -> FallbackChain:
        return FallbackChain(self.code, self.adapters)


def _definition(code: str, name: str, unit: str, source: str, category: str) -> IndicatorDefinition:
    return IndicatorDefinition(code=code, name=name, unit=unit, source=source, category=category)


def build_ingest_plan(
    *,
    cache: DownloadCache,
    retry_policy: RetryPolicy,
    ndgain_dir: str | Path | None = None,
    page_delay: float | None = None,
    score_year: int | None = None,
) -> list[IndicatorSpec]:
    """
    Build the ordered adapter list for every ingested indicator.

    Adapters that read the same upstream share one instance (and the
    download cache), so a run touches each CSV once.
    """
    ndgain = Path(ndgain_dir or settings.ndgain_dir)
    latest_year = score_year or settings.score_year

    wdi = WorldBankSource(name=WDI, retry_policy=retry_policy, page_delay=page_delay)

    def owid_co2(column: str, *, name: str = OWID_CO2, multiplier: float = 1.0) -> CSVSource:
        return CSVSource(
            settings.owid_co2_csv_url,
            name=name,
            country_column="iso_code",
            year_column="year",
            value_column=column,
            multiplier=multiplier,
            cache=cache,
            retry_policy=retry_policy,
        )

    def owid_energy(column: str, *, name: str) -> CSVSource:
        return CSVSource(
            settings.owid_energy_csv_url,
            name=name,
            country_column="iso_code",
            year_column="year",
            value_column=column,
            cache=cache,
            retry_policy=retry_policy,
        )

    def datasets_csv(url: str) -> CSVSource:
        return CSVSource(
            url,
            name=DATASETS,
            country_column="Country Code",
            year_column="Year",
            value_column="Value",
            cache=cache,
            retry_policy=retry_policy,
        )

    def ndgain_csv(filename: str) -> CSVSource:
        return CSVSource(
            ndgain / filename,
            name=NDGAIN,
            country_column="ISO3",
            layout="wide",
            cache=cache,
            retry_policy=retry_policy,
        )

    plan: list[IndicatorSpec] = [
        # World Bank only
        IndicatorSpec(
            _definition(CO2_PER_CAPITA, "CO2 emissions per capita (excl. LULUCF)", "t CO2e/capita", WDI, "emissions"),
            [wdi],
        ),
        IndicatorSpec(
            _definition(GDP_PER_CAPITA, "GDP per capita (current US$)", "current US$", WDI, "economy"),
            [wdi],
        ),
        IndicatorSpec(
            _definition("EN.ATM.PM25.MC.M3", "PM2.5 air pollution, mean annual exposure", "µg/m³", WDI, "environment"),
            [wdi],
        ),
        IndicatorSpec(
            _definition("AG.LND.FRST.ZS", "Forest area (% of land area)", "%", WDI, "environment"),
            [wdi],
        ),
        IndicatorSpec(
            _definition("EG.USE.PCAP.KG.OE", "Energy use per capita", "kg of oil equivalent", WDI, "energy"),
            [wdi],
        ),
        # World Bank with fallbacks
        IndicatorSpec(
            _definition(POPULATION, "Total population", "people", WDI, "socioeconomic"),
            [wdi, datasets_csv(settings.datasets_population_csv_url)],
        ),
        IndicatorSpec(
            _definition(URBAN_SHARE, "Urban population (% of total population)", "%", WDI, "socioeconomic"),
            [wdi, OWIDGrapherSource(URBAN_SHARE_INDICATOR_ID, retry_policy=retry_policy)],
        ),
        IndicatorSpec(
            _definition(
                RENEWABLE_CONSUMPTION,
                "Renewable energy consumption (% of total final energy consumption)",
                "%",
                WDI,
                "energy",
            ),
            [wdi, owid_energy("renewables_share_energy", name=OWID)],
        ),
        IndicatorSpec(
            _definition(
                GHG_TOTAL_KT,
                "Total greenhouse gas emissions (kt of CO2 equivalent)",
                "kt CO2e",
                WDI,
                "emissions",
            ),
            [
                wdi,
                owid_co2("total_ghg", name=OWID, multiplier=1000.0),
                ClimateWatchSource(
                    name=CLIMATE_WATCH, multiplier=1000.0, page_delay=page_delay, retry_policy=retry_policy
                ),
            ],
        ),
        IndicatorSpec(
            _definition(GDP_TOTAL, "GDP (current US$)", "current US$", WDI, "economy"),
            [wdi, datasets_csv(settings.datasets_gdp_csv_url)],
        ),
    ]

    plan.extend(
        IndicatorSpec(_definition(code, name, unit, "OWID", "emissions"), [owid_co2(column)])
        for column, code, name, unit in OWID_CO2_COLUMNS
    )
    plan.extend(
        IndicatorSpec(_definition(code, name, unit, EMBER, "energy"), [owid_energy(column, name=EMBER)])
        for column, code, name, unit in EMBER_COLUMNS
    )
    plan.append(
        IndicatorSpec(
            _definition(
                CLIMATEWATCH_TOTAL_GHG,
                "Total GHG emissions incl. land-use change (Climate Watch, PIK)",
                "Mt CO2e",
                CLIMATE_WATCH,
                "emissions",
            ),
            [ClimateWatchSource(name=CLIMATE_WATCH, page_delay=page_delay, retry_policy=retry_policy)],
        )
    )
    plan.extend(
        [
            IndicatorSpec(
                _definition(NDGAIN_VULNERABILITY, "ND-GAIN vulnerability score", "score (0-1)", NDGAIN, "resilience"),
                [ndgain_csv("vulnerability.csv")],
            ),
            IndicatorSpec(
                _definition(NDGAIN_READINESS, "ND-GAIN readiness score", "score (0-1)", NDGAIN, "resilience"),
                [ndgain_csv("readiness.csv")],
            ),
        ]
    )
    plan.extend(
        IndicatorSpec(
            _definition(code, CTRACE_NAMES[sector], "tonnes CO2e", "Climate TRACE", "emissions"),
            [ClimateTraceSource(sector, retry_policy=retry_policy)],
            year_range=(settings.year_start, latest_year),
        )
        for sector, code in SECTOR_INDICATOR_MAP.items()
    )
    return plan


# ---------------------------------------------------------------------------
# Catalog entries for computed indicators
# ---------------------------------------------------------------------------

DERIVED_DEFINITIONS: dict[str, IndicatorDefinition] = {
    DERIVED_CO2_PER_GDP: _definition(
        DERIVED_CO2_PER_GDP, "CO2 per 1000 USD of GDP", "t CO2e per 1000 USD", DERIVED_SOURCE, "emissions"
    ),
    DERIVED_DECOUPLING: _definition(
        DERIVED_DECOUPLING,
        f"Decoupling index (GDP growth minus CO2 growth since {DECOUPLING_BASE_YEAR})",
        "percentage points",
        DERIVED_SOURCE,
        "economy",
    ),
    DERIVED_EMISSIONS_INTENSITY: _definition(
        DERIVED_EMISSIONS_INTENSITY, "Emissions intensity", "kt CO2e per USD", DERIVED_SOURCE, "emissions"
    ),
    DERIVED_CLIMATE_CLASS: _definition(
        DERIVED_CLIMATE_CLASS,
        f"Climate action class ({CLIMATE_CLASS_YEAR}): 1 Changer, 2 Starter, 3 Talker",
        "class",
        DERIVED_SOURCE,
        "analysis",
    ),
    CTRACE_TOTAL: _definition(
        CTRACE_TOTAL, "Total GHG emissions, all sectors (Climate TRACE)", "tonnes CO2e", "Climate TRACE", "emissions"
    ),
}

REPORT_DEFINITIONS: dict[str, IndicatorDefinition] = {
    **{
        code: _definition(code, f"Report Card {domain.lower()} score", "score (0-100)", REPORT_SOURCE, "report")
        for domain, code in DOMAIN_SCORE_CODES.items()
    },
    TOTAL_SCORE_CODE: _definition(TOTAL_SCORE_CODE, "Report Card total score", "score (0-100)", REPORT_SOURCE, "report"),
    GRADE_CODE: _definition(
        GRADE_CODE, "Report Card grade (A+=7 … F=0)", "grade", REPORT_SOURCE, "report"
    ),
}
