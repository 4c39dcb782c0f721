"""API client configuration from YAML file.

Loads the `api:` section of a YAML file into a ClientConfig:

    api:
      base_url: ${API_BASE_URL:-http://localhost:8085}
      timeout_ms: 30000
      retry:
        attempts: 3
        network_attempts: 2
        delay_ms: 1000
        backoff: 2
        retryable_statuses: [408, 429, 500, 502, 503, 504]

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files,
and API_* variables override file values.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from apishield.errors.exceptions import ConfigurationError
from apishield.resilience.retry import (
    DEFAULT_RETRYABLE_STATUSES,
    RetryConfig,
    coerce_bool,
)
from apishield.transport.http_client import DEFAULT_HEADERS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config.yaml")

# Environment variable -> config field
ENV_OVERRIDES = {
    "API_BASE_URL": "base_url",
    "API_TIMEOUT_MS": "timeout_ms",
    "API_RETRY_ATTEMPTS": "retry_attempts",
    "API_NETWORK_RETRY_ATTEMPTS": "network_retry_attempts",
    "API_RETRY_DELAY_MS": "retry_base_delay_ms",
    "API_ENABLE_LOGGING": "enable_logging",
}

# Keys accepted under `api.retry:` -> config field
RETRY_SECTION_KEYS = {
    "attempts": "retry_attempts",
    "network_attempts": "network_retry_attempts",
    "delay_ms": "retry_base_delay_ms",
    "backoff": "backoff_multiplier",
    "max_delay_ms": "max_delay_ms",
    "respect_retry_after": "respect_retry_after",
    "retryable_statuses": "retryable_statuses",
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_statuses(value: Any) -> frozenset[int]:
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    try:
        return frozenset(int(status) for status in value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"retryable_statuses must be a list of integers, got {value!r}") from e


@dataclass
class ClientConfig:
    """API client configuration.

    All timing values in milliseconds.
    """

    base_url: str = "http://localhost:8085"
    timeout_ms: int = 30000

    # =========================================================================
    # RETRY
    # =========================================================================
    retry_attempts: int = 3
    network_retry_attempts: int = 2
    retry_base_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: int | None = None
    respect_retry_after: bool = False
    retryable_statuses: frozenset[int] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_STATUSES
    )

    # =========================================================================
    # LOGGING
    # =========================================================================
    enable_logging: bool = False
    slow_request_threshold_ms: int = 2000

    # =========================================================================
    # AUTH / HEADERS
    # =========================================================================
    refresh_path: str = "/api/auth/refresh"
    correlation_header: str = "Correlation-ID"
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))

    def __post_init__(self):
        """Coerce values read from YAML/env vars."""
        try:
            self.timeout_ms = int(self.timeout_ms)
            self.retry_attempts = int(self.retry_attempts)
            self.network_retry_attempts = int(self.network_retry_attempts)
            self.retry_base_delay_ms = int(self.retry_base_delay_ms)
            self.backoff_multiplier = float(self.backoff_multiplier)
            if self.max_delay_ms is not None:
                self.max_delay_ms = int(self.max_delay_ms)
            self.slow_request_threshold_ms = int(self.slow_request_threshold_ms)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid numeric configuration value: {e}") from e
        self.respect_retry_after = coerce_bool(self.respect_retry_after)
        self.enable_logging = coerce_bool(self.enable_logging)
        self.retryable_statuses = _parse_statuses(self.retryable_statuses)
        self.default_headers = {str(k): str(v) for k, v in (self.default_headers or {}).items()}

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: On the first invalid value
        """
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"base_url must be an http(s) URL, got '{self.base_url}'")

        self._validate_min("timeout_ms", 1)
        self._validate_min("retry_attempts", 0)
        self._validate_min("network_retry_attempts", 0)
        self._validate_min("retry_base_delay_ms", 0)
        self._validate_min("backoff_multiplier", 1)
        self._validate_min("slow_request_threshold_ms", 0)
        if self.max_delay_ms is not None:
            self._validate_min("max_delay_ms", 0)

        invalid = sorted(s for s in self.retryable_statuses if not 100 <= s <= 599)
        if invalid:
            raise ConfigurationError(
                f"retryable_statuses must be HTTP status codes (100-599), got {invalid}"
            )

        if not self.refresh_path:
            raise ConfigurationError("refresh_path cannot be empty")
        if not self.correlation_header:
            raise ConfigurationError("correlation_header cannot be empty")

    def _validate_min(self, key: str, min_value: float) -> None:
        value = getattr(self, key)
        if value < min_value:
            raise ConfigurationError(f"{key} must be >= {min_value}, got {value}")

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.retry_attempts,
            max_network_retries=self.network_retry_attempts,
            base_delay_ms=self.retry_base_delay_ms,
            exponential_base=self.backoff_multiplier,
            max_delay_ms=self.max_delay_ms,
            respect_retry_after=self.respect_retry_after,
            retryable_statuses=self.retryable_statuses,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["retryable_statuses"] = sorted(self.retryable_statuses)
        return data


def _flatten_section(section: dict[str, Any]) -> dict[str, Any]:
    """Map the YAML `api:` section onto ClientConfig field names."""
    values = {k: v for k, v in section.items() if k != "retry"}
    retry = section.get("retry") or {}
    if not isinstance(retry, dict):
        raise ConfigurationError("api.retry must be a mapping")
    for key, value in retry.items():
        if key not in RETRY_SECTION_KEYS:
            raise ConfigurationError(f"Unknown setting api.retry.{key}")
        values[RETRY_SECTION_KEYS[key]] = value

    known = set(ClientConfig.__dataclass_fields__)
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown api settings: {unknown}")
    return values


def _apply_env_overrides(values: dict[str, Any]) -> dict[str, Any]:
    result = dict(values)
    for env_var, key in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            logger.debug(f"Overriding {key} from {env_var}")
            result[key] = value
    return result


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ClientConfig:
    """Load API client configuration.

    Reads the `api:` section of config_path (or ./config.yaml when it exists),
    merges overrides, then applies API_* environment overrides.

    Raises:
        FileNotFoundError: config_path was given and does not exist
        ConfigurationError: Invalid structure or values
    """
    section: dict[str, Any] = {}

    if config_path is not None and not Path(config_path).exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_FILE
    if path.exists():
        logger.info(f"Loading configuration from file: {path}")
        yaml_data = _expand_env_vars(load_yaml(path))
        if "api" not in yaml_data:
            raise ConfigurationError(
                f"Invalid config file {path}: missing 'api:' section\n"
                "See config.yaml.example for correct structure"
            )
        section = yaml_data["api"] or {}
        if not isinstance(section, dict):
            raise ConfigurationError("'api:' section must be a mapping")

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        section = _deep_merge(section, overrides)

    values = _apply_env_overrides(_flatten_section(section))

    config = ClientConfig(**values)
    config.validate()
    logger.debug(f"Configuration loaded: base_url={config.base_url}")
    return config


_client_config: ClientConfig | None = None


def get_config() -> ClientConfig:
    """Get or load the process-wide default config."""
    global _client_config
    if _client_config is None:
        _client_config = load_config()
    return _client_config


def set_config(config: ClientConfig) -> None:
    """Set the process-wide default config (useful for testing)."""
    global _client_config
    _client_config = config


def reset_config() -> None:
    """Reset the default config (forces reload on next get_config() call)."""
    global _client_config
    _client_config = None


def _cli_main(argv: list[str] | None = None) -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="API client configuration tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate ./config.yaml and print the merged configuration
  python -m apishield.config --validate

  # Use a specific file
  python -m apishield.config --config /path/to/config.yaml --validate

  # JSON output for automation
  python -m apishield.config --validate --json
        """,
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and print the merged result",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml file (default: ./config.yaml)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Load environment variables from this file first (default: ./.env)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format instead of YAML",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    load_dotenv(args.env_file)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not args.validate:
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
    except FileNotFoundError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        return 1
    except ConfigurationError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ Validation error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps({"validation": {"passed": True}, "config": config.to_dict()}, indent=2))
    else:
        print("✓ Configuration validation passed")
        print(yaml.safe_dump({"api": config.to_dict()}, default_flow_style=False, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
