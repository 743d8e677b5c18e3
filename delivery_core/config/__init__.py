# =============================================================================
# delivery_core/config/__init__.py
# Runtime configuration
# =============================================================================

from .settings import (
    TrackerConfig,
    StartupMode,
    load_config,
)

__all__ = ["TrackerConfig", "StartupMode", "load_config"]
