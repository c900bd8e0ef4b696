# =============================================================================
# barberpro/config/__init__.py
# Runtime Configuration
# =============================================================================

from .settings import Settings, load_settings, DEFAULT_SECRETS_PATH

__all__ = ["Settings", "load_settings", "DEFAULT_SECRETS_PATH"]
