"""
Configuration Management Module
Loads and validates configuration from config.yaml
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


@dataclass
class SearchConfig:
    """Streaming search parameters"""
    entry_tag: str = "sdnEntry"
    encoding: str = "utf-8"


@dataclass
class DataConfig:
    """Data source configuration (used by the downloader, CLI and API only)"""
    sdn_url: str = "https://www.treasury.gov/ofac/downloads/sdn_xml.zip"
    data_directory: str = "/tmp"
    xml_name: str = "sdn.xml"
    force_refresh: bool = False
    timeout_seconds: int = 120
    max_retry_attempts: int = 3


@dataclass
class InputValidationConfig:
    """Input validation configuration for user-provided query fields"""
    name_max_length: int = 200
    document_max_length: int = 50
    country_max_length: int = 100
    blocked_characters: str = "<>{}[]|\\;`$"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class ApiConfig:
    """HTTP API configuration"""
    host: str = "127.0.0.1"
    port: int = 8000


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.search: SearchConfig = SearchConfig()
        self.data: DataConfig = DataConfig()
        self.input_validation: InputValidationConfig = InputValidationConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.api: ApiConfig = ApiConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning("Config file not found at %s, using defaults", self.config_path)

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_search()
        self._parse_data()
        self._parse_input_validation()
        self._parse_logging()
        self._parse_api()
        self._validate()

    def _section(self, name: str) -> Dict[str, Any]:
        cfg = self._raw_config.get(name) or {}
        if not isinstance(cfg, dict):
            raise ConfigurationError(f"Section '{name}' must be a mapping")
        return cfg

    def _parse_search(self) -> None:
        """Parse search configuration"""
        cfg = self._section('search')
        self.search = SearchConfig(
            entry_tag=cfg.get('entry_tag', self.search.entry_tag),
            encoding=cfg.get('encoding', self.search.encoding)
        )

    def _parse_data(self) -> None:
        """Parse data source configuration"""
        cfg = self._section('data')
        self.data = DataConfig(
            sdn_url=cfg.get('sdn_url', self.data.sdn_url),
            data_directory=cfg.get('data_directory', self.data.data_directory),
            xml_name=cfg.get('xml_name', self.data.xml_name),
            force_refresh=cfg.get('force_refresh', False),
            timeout_seconds=cfg.get('timeout_seconds', 120),
            max_retry_attempts=cfg.get('max_retry_attempts', 3)
        )

    def _parse_input_validation(self) -> None:
        """Parse input validation configuration"""
        cfg = self._section('input_validation')
        self.input_validation = InputValidationConfig(
            name_max_length=cfg.get('name_max_length', 200),
            document_max_length=cfg.get('document_max_length', 50),
            country_max_length=cfg.get('country_max_length', 100),
            blocked_characters=cfg.get('blocked_characters', "<>{}[]|\\;`$")
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._section('logging')
        self.logging = LoggingConfig(
            level=str(cfg.get('level', 'INFO')).upper(),
            file=cfg.get('file'),
            format=cfg.get('format', self.logging.format)
        )

    def _parse_api(self) -> None:
        """Parse API configuration"""
        cfg = self._section('api')
        self.api = ApiConfig(
            host=cfg.get('host', self.api.host),
            port=cfg.get('port', self.api.port)
        )

    def _validate(self) -> None:
        """Validate configuration values"""
        if not self.search.entry_tag or not self.search.entry_tag.isidentifier():
            raise ConfigurationError(
                f"search.entry_tag must be a plain element name, got {self.search.entry_tag!r}"
            )

        if self.logging.level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"logging.level must be one of {', '.join(VALID_LOG_LEVELS)}, got {self.logging.level!r}"
            )

        for name in ('timeout_seconds', 'max_retry_attempts'):
            value = getattr(self.data, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"data.{name} must be a positive integer, got {value!r}")

        iv = self.input_validation
        for name in ('name_max_length', 'document_max_length', 'country_max_length'):
            value = getattr(iv, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"input_validation.{name} must be a positive integer, got {value!r}")

        if not isinstance(self.api.port, int) or not 0 < self.api.port < 65536:
            raise ConfigurationError(f"api.port must be a valid TCP port, got {self.api.port!r}")

    @property
    def xml_path(self) -> Path:
        """Local path of the extracted SDN document"""
        return Path(self.data.data_directory) / self.data.xml_name

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        return {
            'search': {
                'entry_tag': self.search.entry_tag,
                'encoding': self.search.encoding
            },
            'data': {
                'sdn_url': self.data.sdn_url,
                'data_directory': self.data.data_directory,
                'xml_name': self.data.xml_name,
                'force_refresh': self.data.force_refresh,
                'timeout_seconds': self.data.timeout_seconds,
                'max_retry_attempts': self.data.max_retry_attempts
            },
            'input_validation': {
                'name_max_length': self.input_validation.name_max_length,
                'document_max_length': self.input_validation.document_max_length,
                'country_max_length': self.input_validation.country_max_length
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file
            },
            'api': {
                'host': self.api.host,
                'port': self.api.port
            }
        }


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)


def configure_logging(config: Optional[ConfigManager] = None) -> None:
    """Apply the logging section to the root logger"""
    config = config or get_config()
    handlers = [logging.StreamHandler()]
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format=config.logging.format,
        handlers=handlers,
        force=True
    )
