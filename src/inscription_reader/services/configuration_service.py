"""
Configuration service for Inscription Reader settings.

Settings are layered: built-in defaults, then an optional YAML file, then
environment variables.
"""
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from inscription_reader.core.errors import ConfigurationError, ErrorCodes
from inscription_reader.models.parameters import ProcessingParameters
from inscription_reader.models.session import SessionMode


logger = logging.getLogger(__name__)

ENV_BACKEND_URL = 'INSCRIPTION_BACKEND_URL'
ENV_TIMEOUT = 'INSCRIPTION_TIMEOUT'
ENV_SESSION_MODE = 'INSCRIPTION_SESSION_MODE'

DEFAULT_CONFIG_PATH = Path.home() / '.inscription_reader' / 'settings.yaml'

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppSettings:
    """Application settings with defaults."""

    backend_url: str = "http://localhost:8000"
    timeout_seconds: float = 60.0
    session_mode: SessionMode = SessionMode.CONTINUOUS
    default_scale: int = 50
    default_noise_divisor: float = 1.0
    download_dir: Path = field(default_factory=lambda: Path.home() / 'Downloads')
    document_name: str = "final_translation.txt"
    single_shot_document_name: str = "translation.txt"
    log_dir: Path = field(default_factory=lambda: Path.home() / '.inscription_reader' / 'logs')
    log_level: str = "INFO"

    @property
    def default_parameters(self) -> ProcessingParameters:
        return ProcessingParameters.from_user(self.default_scale, self.default_noise_divisor)

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate the settings.

        Returns:
            Tuple of (is_valid, list_of_error_messages)
        """
        errors = []

        if not self.backend_url.startswith(('http://', 'https://')):
            errors.append(f"backend_url must start with http:// or https://: {self.backend_url}")

        if self.timeout_seconds <= 0:
            errors.append(f"timeout_seconds must be positive: {self.timeout_seconds}")

        try:
            _, param_errors = self.default_parameters.validate()
            errors.extend(param_errors)
        except ValueError as e:
            errors.append(f"Invalid default parameters: {e}")

        for name in ('document_name', 'single_shot_document_name'):
            value = getattr(self, name)
            if not value or Path(value).name != value:
                errors.append(f"{name} must be a plain file name: {value!r}")

        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(_LOG_LEVELS)}: {self.log_level}")

        return (len(errors) == 0, errors)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form suitable for YAML."""
        data = asdict(self)
        data['session_mode'] = self.session_mode.value
        data['download_dir'] = str(self.download_dir)
        data['log_dir'] = str(self.log_dir)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppSettings':
        """
        Build settings from a mapping, ignoring unknown keys.

        Raises:
            ConfigurationError: If a value has the wrong type
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")

        values = {k: v for k, v in data.items() if k in known and v is not None}
        try:
            if 'session_mode' in values:
                values['session_mode'] = SessionMode.parse(values['session_mode'])
            if 'timeout_seconds' in values:
                values['timeout_seconds'] = float(values['timeout_seconds'])
            if 'default_scale' in values:
                values['default_scale'] = int(values['default_scale'])
            if 'default_noise_divisor' in values:
                values['default_noise_divisor'] = float(values['default_noise_divisor'])
            for key in ('download_dir', 'log_dir'):
                if key in values:
                    values[key] = Path(values[key]).expanduser()
            if 'backend_url' in values:
                values['backend_url'] = str(values['backend_url']).rstrip('/')
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid setting value: {e}",
                error_code=ErrorCodes.CONFIG_INVALID,
                cause=e,
            )
        return cls(**values)


class ConfigurationService:
    """Loads and saves AppSettings."""

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        """
        Args:
            config_path: YAML settings file; DEFAULT_CONFIG_PATH when None
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._environ = os.environ if environ is None else environ

    def load(self) -> AppSettings:
        """
        Load settings from file and environment.

        A missing file is not an error; defaults are used.

        Raises:
            ConfigurationError: If the file is unreadable, malformed, or invalid
        """
        data: Dict[str, Any] = {}

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Could not read settings from {self.config_path}",
                    error_code=ErrorCodes.CONFIG_INVALID,
                    cause=e,
                )
            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigurationError(
                    f"Settings file must contain a mapping: {self.config_path}",
                    error_code=ErrorCodes.CONFIG_INVALID,
                )
            data.update(loaded or {})
            logger.info(f"Loaded settings from {self.config_path}")
        else:
            logger.info(f"Settings file not found: {self.config_path}. Using defaults.")

        data.update(self._environment_overrides())

        settings = AppSettings.from_dict(data)
        valid, errors = settings.validate()
        if not valid:
            raise ConfigurationError(
                "Invalid settings: " + "; ".join(errors),
                error_code=ErrorCodes.CONFIG_INVALID,
            )
        return settings

    def save(self, settings: AppSettings) -> Path:
        """
        Write settings to the configured YAML file.

        Raises:
            ConfigurationError: If the file cannot be written
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(settings.to_dict(), f, default_flow_style=False, sort_keys=False, indent=2)
        except OSError as e:
            raise ConfigurationError(
                f"Could not save settings to {self.config_path}",
                error_code=ErrorCodes.CONFIG_SAVE_ERROR,
                cause=e,
            )
        logger.info(f"Wrote settings to {self.config_path}")
        return self.config_path

    def _environment_overrides(self) -> Dict[str, Any]:
        overrides = {}
        if self._environ.get(ENV_BACKEND_URL):
            overrides['backend_url'] = self._environ[ENV_BACKEND_URL]
        if self._environ.get(ENV_TIMEOUT):
            overrides['timeout_seconds'] = self._environ[ENV_TIMEOUT]
        if self._environ.get(ENV_SESSION_MODE):
            overrides['session_mode'] = self._environ[ENV_SESSION_MODE]
        return overrides
