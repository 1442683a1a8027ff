"""
Configuration management for Clatter.

Loads settings from ~/.clatter/config.toml with fallback to defaults.
The [engine] section doubles as the persisted last-used state.
"""
import copy
import logging
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".clatter" / "config.toml"

# Default configuration values
DEFAULT_CONFIG = {
    "audio": {
        "sample_rate": 44100,
        "channels": 2,
        "blocksize": 256,
        "latency": "low",
        "max_voices": 24,
        "volume": 1.0
    },
    "engine": {
        "preset": "default",
        "device": "",
        "enabled": True
    },
    "presets": {
        "path": ""
    },
    "ui": {
        "verbose": False,
        "quiet": False,
        "suppress_repeat": True
    }
}


@dataclass
class ClatterConfig:
    """Main configuration class for Clatter."""
    audio: Dict[str, Any]
    engine: Dict[str, Any]
    presets: Dict[str, Any]
    ui: Dict[str, Any]

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> 'ClatterConfig':
        """
        Load configuration from file with fallback to defaults.

        Args:
            config_path: Path to config file (defaults to ~/.clatter/config.toml)

        Returns:
            ClatterConfig instance with merged settings
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        else:
            config_path = Path(config_path)

        # Start with defaults
        config_data = copy.deepcopy(DEFAULT_CONFIG)

        # Try to load and merge user config
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    user_config = tomllib.load(f)

                config_data = _deep_merge(config_data, user_config)
                logger.info(f"Loaded configuration from {config_path}")

            except Exception as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")
                logger.info("Using default configuration")
        else:
            logger.info(f"Config file not found at {config_path}, using defaults")

            # Create config directory and example file
            try:
                config_path.parent.mkdir(parents=True, exist_ok=True)
                _create_example_config(config_path)
            except Exception as e:
                logger.warning(f"Could not create example config: {e}")

        known = {k: config_data.get(k, {}) for k in DEFAULT_CONFIG}
        known["audio"] = _validate_audio(known["audio"])
        return cls(**known)

    def save(self, config_path: Optional[str] = None) -> bool:
        """
        Save current configuration to file.

        Args:
            config_path: Path to save config (defaults to ~/.clatter/config.toml)

        Returns:
            True if saved successfully, False otherwise
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        else:
            config_path = Path(config_path)

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)

            config_dict = asdict(self)
            toml_content = _dict_to_toml(config_dict)

            with open(config_path, "w") as f:
                f.write(toml_content)

            logger.info(f"Configuration saved to {config_path}")
            return True

        except Exception as e:
            logger.error(f"Failed to save config to {config_path}: {e}")
            return False

    def sink_config(self):
        """Build the audio SinkConfig from the [audio] section."""
        from core.audio.sink import SinkConfig
        return SinkConfig(
            sample_rate=int(self.audio["sample_rate"]),
            channels=int(self.audio["channels"]),
            blocksize=int(self.audio["blocksize"]),
            latency=self.audio["latency"],
            max_voices=int(self.audio["max_voices"]),
            volume=float(self.audio["volume"]),
        )


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


# (key, type, minimum, maximum)
_AUDIO_LIMITS = (
    ("sample_rate", int, 8000, 192000),
    ("channels", int, 1, 2),
    ("blocksize", int, 0, 8192),
    ("max_voices", int, 1, 256),
    ("volume", float, 0.0, 2.0),
)


def _validate_audio(audio: Dict[str, Any]) -> Dict[str, Any]:
    """Replace out-of-range or mistyped [audio] values with defaults."""
    result = dict(audio)
    defaults = DEFAULT_CONFIG["audio"]

    for key, kind, low, high in _AUDIO_LIMITS:
        value = result.get(key, defaults[key])
        try:
            if isinstance(value, bool):
                raise TypeError("boolean")
            value = kind(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid audio.{key} = {result.get(key)!r}, using {defaults[key]}")
            result[key] = defaults[key]
            continue
        if not low <= value <= high:
            logger.warning(f"audio.{key} = {value} outside {low}..{high}, using {defaults[key]}")
            value = defaults[key]
        result[key] = value

    if result.get("latency") not in ("low", "high") and not isinstance(result.get("latency"), (int, float)):
        logger.warning(f"Invalid audio.latency = {result.get('latency')!r}, using 'low'")
        result["latency"] = "low"
    return result


def _create_example_config(config_path: Path) -> None:
    """Create an example configuration file."""
    toml_content = _dict_to_toml(DEFAULT_CONFIG)

    header = """# Clatter Configuration
# This file was auto-generated with default values.
# [engine] is rewritten on exit with the last preset, device and enabled flag.

"""

    with open(config_path, "w") as f:
        f.write(header + toml_content)

    logger.info(f"Created example config at {config_path}")


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _dict_to_toml(data: Dict[str, Any]) -> str:
    """Convert a two-level dictionary to TOML (simple implementation)."""
    lines = []

    for key, value in data.items():
        if isinstance(value, dict):
            lines.append(f"[{key}]")
            for sub_key, sub_value in value.items():
                lines.append(f"{sub_key} = {_toml_value(sub_value)}")
            lines.append("")
        else:
            lines.insert(0, f"{key} = {_toml_value(value)}")

    return "\n".join(lines)


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return _toml_string(str(value))


# Convenience function
def load_config(config_path: Optional[str] = None) -> ClatterConfig:
    """Load Clatter configuration from file or defaults."""
    return ClatterConfig.load(config_path)


if __name__ == "__main__":
    """Test configuration loading."""
    config = load_config()
    print("Loaded configuration:")
    print(f"Sample rate: {config.audio['sample_rate']}")
    print(f"Preset: {config.engine['preset']}")
    print(f"Device: {config.engine['device'] or '(default)'}")
