"""
visualclimate_shared — configuration, store clients, models and indicator
catalog constants shared by the VisualClimate pipeline.

Usage:
    from visualclimate_shared.config import settings
    from visualclimate_shared.db import get_supabase_client, get_duckdb_connection
    from visualclimate_shared.models.indicators import IndicatorDefinition, ObservedValue
    from visualclimate_shared.constants import DOMAIN_WEIGHTS, GRADE_THRESHOLDS
    from visualclimate_shared.errors import SourceUnavailable, ParseError
"""

__version__ = "0.1.0"
