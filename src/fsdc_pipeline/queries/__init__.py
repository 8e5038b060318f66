"""Read-only queries over the pipeline tables."""

from .fixtures import get_fixtures_overview

__all__ = ["get_fixtures_overview"]
