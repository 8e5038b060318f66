"""
Core module for the fixtures pipeline.

This module provides the foundational components:
- Configuration management (config.py)
- Status enums and table names (types.py)
- Shared HTTP client infrastructure (http.py)

Usage:
    from fsdc_pipeline.core import Settings, get_settings
    from fsdc_pipeline.core import OverallStatus, StageStatus, StatusGroup
    from fsdc_pipeline.core.http import BaseApiClient, ExternalAPIError
"""

# Configuration
from .config import Settings, get_settings

# Types
from .types import (
    OverallStatus,
    Stage,
    StageStatus,
    StatusGroup,
    SyncStatus,
    Venue,
    truncate_error,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "OverallStatus",
    "Stage",
    "StageStatus",
    "StatusGroup",
    "SyncStatus",
    "Venue",
    "truncate_error",
]
