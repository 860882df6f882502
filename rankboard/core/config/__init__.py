"""
Configuration subsystem for Rankboard.

- **config.py**: static configuration from environment variables (.env support)
- **manager.py**: leaderboard tunables from YAML with dot-notation access

Static values (database URL, pool sizes, log level) require a restart to
change. Tunables (limits, college grouping policy, timeouts) are read through
`ConfigManager.get()` at call time.
"""

from rankboard.core.config.config import Config, Environment
from rankboard.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
]
