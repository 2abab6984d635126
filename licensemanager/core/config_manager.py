"""
License Manager Configuration Management

JSON configuration file with one section per concern, overridable through
LICENSEMANAGER_<SECTION>_<FIELD> environment variables, e.g.

    LICENSEMANAGER_ONLINE_API_URL=https://license.example.com/api/v1
    LICENSEMANAGER_SERVER_PORT=9000

The file location is the constructor argument, else LICENSEMANAGER_CONFIG,
else licensemanager.json in the working directory.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from licensemanager.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LICENSEMANAGER_CONFIG"
ENV_PREFIX = "LICENSEMANAGER_"
DEFAULT_CONFIG_FILE = "licensemanager.json"
CONFIG_VERSION = "1.0.0"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class KeyPaths:
    """Locations of the key material"""
    private_key: str = "keys/private_key.pem"
    public_key: str = "keys/public_key.pem"
    aes_key: str = "keys/aes_key.bin"


@dataclass
class OnlineSettings:
    """License server connection used by online and dual verification"""
    api_url: str = "http://127.0.0.1:8080/api/v1"
    app_id: str = "default"
    timeout: float = 10.0
    retries: int = 0
    api_token: Optional[str] = None


@dataclass
class ServerSettings:
    """License server settings"""
    host: str = "127.0.0.1"
    port: int = 8080
    database: str = "data/licenses.db"
    require_token: bool = False


@dataclass
class LoggingSettings:
    level: str = "INFO"
    json_format: bool = False
    log_file: Optional[str] = None


@dataclass
class SystemConfig:
    """Main configuration"""
    keys: KeyPaths = field(default_factory=KeyPaths)
    online: OnlineSettings = field(default_factory=OnlineSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    version: str = CONFIG_VERSION


SECTIONS = {
    "keys": KeyPaths,
    "online": OnlineSettings,
    "server": ServerSettings,
    "logging": LoggingSettings,
}


def _coerce(value: str, field_type: Any, name: str) -> Any:
    """Convert an environment string to a field's declared type"""
    if field_type is bool:
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ConfigurationError(f"Invalid boolean for {name}: {value}")
    try:
        if field_type is int:
            return int(value)
        if field_type is float:
            return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid number for {name}: {value}")
    if field_type == Optional[str]:
        return value or None
    return value


class ConfigManager:
    """Loads, validates and saves the license manager configuration"""

    def __init__(self, config_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Optional path to configuration file
            environ: Environment used for overrides (defaults to os.environ)
        """
        self._environ = os.environ if environ is None else environ
        self._config_file = config_file or self._environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE
        self._config: Optional[SystemConfig] = None

    @property
    def config_file(self) -> str:
        return self._config_file

    @property
    def base_dir(self) -> Path:
        """Directory relative paths in the configuration are resolved against"""
        return Path(self._config_file).resolve().parent

    def _build_config(self, data: Dict[str, Any]) -> SystemConfig:
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be an object")

        sections = {}
        for name, section_type in SECTIONS.items():
            values = data.get(name, {})
            if not isinstance(values, dict):
                raise ConfigurationError(f"Configuration section '{name}' must be an object")
            known = {f.name for f in fields(section_type)}
            unknown = set(values) - known
            if unknown:
                raise ConfigurationError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
            sections[name] = section_type(**values)

        return SystemConfig(version=str(data.get("version", CONFIG_VERSION)), **sections)

    def _apply_env_overrides(self, config: SystemConfig) -> None:
        for name in SECTIONS:
            section = getattr(config, name)
            for f in fields(section):
                env_name = f"{ENV_PREFIX}{name.upper()}_{f.name.upper()}"
                if env_name in self._environ:
                    value = _coerce(self._environ[env_name], f.type, env_name)
                    setattr(section, f.name, value)
                    logger.debug(f"Configuration override from {env_name}")

    def validate(self, config: SystemConfig) -> None:
        """
        Validate configuration values

        Raises:
            ConfigurationError: On the first invalid value
        """
        api_url = config.online.api_url
        if not isinstance(api_url, str) or not api_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid online.api_url: {config.online.api_url}")
        if not isinstance(config.online.timeout, (int, float)) or config.online.timeout <= 0:
            raise ConfigurationError(f"Invalid online.timeout: {config.online.timeout}")
        if not isinstance(config.online.retries, int) or config.online.retries < 0:
            raise ConfigurationError(f"Invalid online.retries: {config.online.retries}")
        if not isinstance(config.server.port, int) or not 0 <= config.server.port <= 65535:
            raise ConfigurationError(f"Invalid server.port: {config.server.port}")
        if str(config.logging.level).upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid logging.level: {config.logging.level}")
        for name in ("private_key", "public_key", "aes_key"):
            if not getattr(config.keys, name):
                raise ConfigurationError(f"Missing keys.{name}")

    def load_config(self) -> SystemConfig:
        """
        Load configuration from file, or defaults when no file exists

        Returns:
            SystemConfig object
        """
        config_path = Path(self._config_file)

        if config_path.exists():
            logger.debug(f"Loading configuration from: {config_path}")
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Configuration loading failed: {e}") from e
            try:
                config = self._build_config(data)
            except TypeError as e:
                raise ConfigurationError(f"Configuration loading failed: {e}") from e
        else:
            logger.debug("Configuration file not found, using defaults")
            config = SystemConfig()

        self._apply_env_overrides(config)
        self.validate(config)
        self._config = config
        return config

    def save_config(self, config: Optional[SystemConfig] = None) -> None:
        """Save configuration to file"""
        config = config or self._config
        if not config:
            raise ConfigurationError("No configuration to save")

        config_path = Path(self._config_file)
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(asdict(config), f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            raise ConfigurationError(f"Configuration saving failed: {e}") from e

        self._config = config
        logger.info(f"Configuration saved to: {config_path}")

    def get_config(self) -> SystemConfig:
        """Get current configuration, loading if necessary"""
        if not self._config:
            return self.load_config()
        return self._config

    def resolve_path(self, relative_path: str) -> Path:
        """Resolve a configured path against the configuration file's directory"""
        path = Path(relative_path).expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path
