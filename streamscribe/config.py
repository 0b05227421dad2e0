"""
Configuration management for streamscribe.

Two layers:
- TranscriptionConfig: immutable per-run settings read by every pipeline stage
- AppConfig: YAML-backed settings (transcription defaults, logging, api)

Configuration Priority (highest to lowest):
    1. Explicit path passed to AppConfig / get_config
    2. $STREAMSCRIBE_CONFIG
    3. User config: $XDG_CONFIG_HOME/streamscribe/config.yaml
                    or ~/.config/streamscribe/config.yaml
    4. Packaged default: streamscribe/config.yaml
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from streamscribe.core.audio_utils import TARGET_SAMPLE_RATE
from streamscribe.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "Systran/faster-whisper-base"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


@dataclass(frozen=True)
class OutputFormat:
    """Output toggles carried with the run configuration."""

    include_timestamps: bool = True
    word_timestamps: bool = False
    include_confidence: bool = False


@dataclass(frozen=True)
class TranscriptionConfig:
    """
    Per-run transcription configuration.

    Instances are immutable; the ``with_*`` helpers return modified copies.
    """

    # Model name (faster-whisper hub id) or local model directory
    model: Optional[str] = None
    # Language code, None for auto-detect
    language: Optional[str] = None
    translate: bool = False
    use_gpu: bool = True
    num_threads: Optional[int] = None
    sample_rate: int = TARGET_SAMPLE_RATE
    # Stop decoding after this many seconds of normalized audio
    max_duration: Optional[float] = None
    # 0.0 = deterministic
    temperature: float = 0.0
    beam_size: Optional[int] = None
    compute_type: str = "default"
    download_root: Optional[str] = None
    output_format: OutputFormat = field(default_factory=OutputFormat)
    verbose: bool = False

    def with_model(self, model: str) -> "TranscriptionConfig":
        return dataclasses.replace(self, model=model)

    def with_language(self, language: Optional[str]) -> "TranscriptionConfig":
        return dataclasses.replace(self, language=language)

    def with_gpu(self, use_gpu: bool) -> "TranscriptionConfig":
        return dataclasses.replace(self, use_gpu=use_gpu)

    def with_threads(self, threads: int) -> "TranscriptionConfig":
        return dataclasses.replace(self, num_threads=threads)

    def with_sample_rate(self, rate: int) -> "TranscriptionConfig":
        return dataclasses.replace(self, sample_rate=rate)

    def with_verbose(self, verbose: bool) -> "TranscriptionConfig":
        return dataclasses.replace(self, verbose=verbose)

    def validate(self) -> "TranscriptionConfig":
        """
        Check values the pipeline cannot work with.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If a value is out of range
        """
        if self.sample_rate != TARGET_SAMPLE_RATE:
            raise ConfigurationError(
                f"Unsupported sample rate {self.sample_rate}: "
                f"the speech engine requires {TARGET_SAMPLE_RATE} Hz"
            )
        if self.num_threads is not None and self.num_threads <= 0:
            raise ConfigurationError(
                f"num_threads must be positive, got {self.num_threads}"
            )
        if self.temperature < 0:
            raise ConfigurationError(
                f"temperature must not be negative, got {self.temperature}"
            )
        if self.beam_size is not None and self.beam_size <= 0:
            raise ConfigurationError(f"beam_size must be positive, got {self.beam_size}")
        if self.max_duration is not None and self.max_duration <= 0:
            raise ConfigurationError(
                f"max_duration must be positive, got {self.max_duration}"
            )
        return self

    @classmethod
    def from_dict(cls, values: Optional[Mapping[str, Any]]) -> "TranscriptionConfig":
        """
        Build a config from a plain mapping (e.g. the YAML ``transcription`` section).

        Unknown keys are ignored with a warning.
        """
        if not values:
            return cls()

        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in known:
                logger.warning(f"Ignoring unknown transcription option: {key}")
                continue
            if key == "output_format":
                value = OutputFormat(**(value or {}))
            kwargs[key] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def get_user_config_dir() -> Path:
    """
    Get the user configuration directory.

    Returns:
        $XDG_CONFIG_HOME/streamscribe/ when set, otherwise ~/.config/streamscribe/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "streamscribe"
    return Path.home() / ".config" / "streamscribe"


class AppConfig:
    """
    YAML configuration manager.

    User config takes precedence over the packaged default.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file. If None, searches in priority order.
        """
        self.config: Dict[str, Any] = {}
        self._config_path = Path(config_path) if config_path else None
        self._loaded_from: Optional[Path] = None
        self._load_config()

    def _find_config_candidates(self) -> list[Path]:
        """Return readable config file candidates in priority order."""
        if self._config_path:
            candidates = [self._config_path]
        else:
            candidates = []
            env_path = os.environ.get("STREAMSCRIBE_CONFIG")
            if env_path:
                candidates.append(Path(env_path))
            candidates.extend(
                [
                    get_user_config_dir() / "config.yaml",
                    DEFAULT_CONFIG_PATH,
                ]
            )

        readable: list[Path] = []
        for path in candidates:
            if not (path.exists() and path.is_file()):
                continue
            try:
                with path.open("r", encoding="utf-8"):
                    pass
                readable.append(path)
            except (PermissionError, OSError):
                continue

        return readable

    def _load_config(self) -> None:
        """Load configuration from the first parseable candidate."""
        candidates = self._find_config_candidates()

        if not candidates:
            if self._config_path:
                raise ConfigurationError(
                    f"Configuration file not found: {self._config_path}"
                )
            logger.warning("No configuration file found, using built-in defaults")
            return

        errors: list[tuple[Path, Exception]] = []
        for config_file in candidates:
            try:
                with config_file.open("r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
                if not isinstance(loaded, dict):
                    raise ConfigurationError(
                        f"Top level of {config_file} must be a mapping"
                    )
                self.config = loaded
                self._loaded_from = config_file
                if errors:
                    logger.warning(
                        "Skipped invalid config file(s): "
                        + ", ".join(str(path) for path, _ in errors)
                    )
                logger.debug(f"Loaded configuration from: {config_file}")
                return
            except (yaml.YAMLError, OSError, ConfigurationError) as e:
                logger.error(f"Could not load config file {config_file}: {e}")
                errors.append((config_file, e))
                if self._config_path:
                    break

        details = "\n".join(f"  - {path}: {err}" for path, err in errors)
        raise ConfigurationError("Failed to load configuration. Tried:\n" + details)

    @property
    def loaded_from(self) -> Optional[Path]:
        """Return the path of the loaded configuration file."""
        return self._loaded_from

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value by nested keys.

            config.get("transcription", "model")
            config.get("logging", "level", default="INFO")

        Raises:
            TypeError: If any key argument is not a string
        """
        if not keys:
            return self.config

        for i, key in enumerate(keys):
            if not isinstance(key, str):
                raise TypeError(
                    f"All configuration keys must be strings, got {type(key).__name__} "
                    f"for keys[{i}]: {repr(key)}. "
                    f"If you want to provide a default value, use the 'default=' keyword argument: "
                    f"cfg.get({', '.join(repr(k) for k in keys[:i] if isinstance(k, str))}, default={repr(key)})"
                )

        value: Any = self.config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @property
    def transcription(self) -> Dict[str, Any]:
        """Get transcription configuration."""
        return self.config.get("transcription") or {}

    @property
    def logging(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.config.get("logging") or {}

    @property
    def api(self) -> Dict[str, Any]:
        """Get API configuration."""
        return self.config.get("api") or {}

    def transcription_config(self) -> TranscriptionConfig:
        """Build the run configuration from the ``transcription`` section."""
        return TranscriptionConfig.from_dict(self.transcription).validate()


def _non_empty_string(value: Any) -> Optional[str]:
    """Return a trimmed string only when value is a non-empty string."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed if trimmed else None


def resolve_model(
    config: TranscriptionConfig, app_config: Optional[AppConfig] = None
) -> str:
    """
    Resolve the model to load for a run.

    Order: the run config's model, then ``transcription.model`` from YAML,
    then the built-in fallback.
    """
    run_model = _non_empty_string(config.model)
    yaml_model = None
    if app_config is not None:
        yaml_model = _non_empty_string(app_config.get("transcription", "model"))
    return run_model or yaml_model or FALLBACK_MODEL


# Global config instance
_config: Optional[AppConfig] = None


def get_config(config_path: Optional[Path] = None) -> AppConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig(config_path)
    return _config


def load_transcription_config(config_path: Optional[Path] = None) -> TranscriptionConfig:
    """Return the TranscriptionConfig built from the global YAML configuration."""
    return get_config(config_path).transcription_config()
