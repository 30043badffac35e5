"""
Trove Keeper.

Tracks a periodically refreshed game catalog, caches the content it
references and reconciles it with locally downloaded installers.
"""

from trove_keeper.config import Settings, get_settings
from trove_keeper.logger import get_logger, setup_logging

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
