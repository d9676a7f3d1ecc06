"""
Configuration models and loading.

Pydantic models for forksync configuration with multi-layer merging:
defaults < user < project < env vars.
"""

from .loader import (
    clear_cache,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
    save_user_config,
)
from .models import ForkSyncConfig, RetrySettings

__all__ = [
    # Models
    "ForkSyncConfig",
    "RetrySettings",
    # Loader functions
    "clear_cache",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    "save_user_config",
]
