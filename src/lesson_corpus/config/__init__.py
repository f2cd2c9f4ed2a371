from .loader import load_settings
from .schema import LoggingConfig, PathsConfig, PlannerConfig, RemoteConfig, Settings

__all__ = [
    "LoggingConfig",
    "PathsConfig",
    "PlannerConfig",
    "RemoteConfig",
    "Settings",
    "load_settings",
]
