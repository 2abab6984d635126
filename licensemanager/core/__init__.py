"""Core runtime support: configuration"""

from licensemanager.core.config_manager import (
    ConfigManager, KeyPaths, LoggingSettings, OnlineSettings, ServerSettings, SystemConfig
)

__all__ = [
    'ConfigManager', 'KeyPaths', 'LoggingSettings', 'OnlineSettings', 'ServerSettings', 'SystemConfig'
]
