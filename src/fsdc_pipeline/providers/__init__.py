"""
Fixture sources.

Usage:
    from fsdc_pipeline.providers import Scores365Client

    async with Scores365Client.from_settings(settings) as source:
        upcoming = await source.fetch_upcoming()
"""

from .base import FixtureSource, Match, ProviderError
from .scores365 import Scores365Client

__all__ = ["FixtureSource", "Match", "ProviderError", "Scores365Client"]
