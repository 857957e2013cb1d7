"""Delta sink configuration from a flat property set or a YAML file.

Two sources produce the same SinkConfig:

- A flat property set handed over by the host runtime, e.g.
  ``{"sink.coordinator.topic": "control-delta", "sink.kafka.bootstrap_servers": "..."}``
- config/config.yaml with the same keys nested under a ``sink:`` section.

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Project root directory (where .env file is located)
# config.py is at src/config/config.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Property keys
KAFKA_PROPERTY_PREFIX = "sink.kafka."
STORAGE_PROPERTY_PREFIX = "sink.storage."
COORDINATOR_TOPIC_PROP = "sink.coordinator.topic"
COMMIT_GROUP_ID_PROP = "sink.commit.group.id"
TABLE_PATH_PROP = "sink.table.path"
COMMIT_INTERVAL_MS_PROP = "sink.commit.interval-ms"
TARGET_FILE_ROWS_PROP = "sink.table.target-file-rows"

DEFAULT_COMMIT_INTERVAL_MS = 300_000
DEFAULT_TARGET_FILE_ROWS = 100_000

# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables."""
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


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into dotted keys: {"a": {"b": 1}} -> {"a.b": 1}."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def properties_with_prefix(props: Mapping[str, Any], prefix: str) -> Dict[str, Any]:
    """Return the entries whose key starts with ``prefix``, with the prefix stripped.

    Keys that are exactly the prefix (nothing left after stripping) are skipped.
    """
    return {
        key[len(prefix):]: value
        for key, value in props.items()
        if key.startswith(prefix) and len(key) > len(prefix)
    }


@dataclass
class SinkConfig:
    """Delta sink configuration.

    Configuration structure (YAML):
        sink:
          coordinator:
            topic: control-delta          # coordination log topic
          commit:
            group.id: cg-control-delta    # durable commit group id
            interval-ms: 300000
          table:
            path: s3://bucket/warehouse/events
            target-file-rows: 100000
          kafka:                          # aiokafka client settings
            bootstrap_servers: localhost:9092
          storage:                        # deltalake storage_options
            AWS_REGION: us-east-1

    All timing values in milliseconds.
    """

    coordinator_topic: str = ""
    commit_group_id: str = ""
    table_path: str = ""
    commit_interval_ms: int = DEFAULT_COMMIT_INTERVAL_MS
    target_file_rows: int = DEFAULT_TARGET_FILE_ROWS

    # Passed verbatim (prefix stripped) to producer, consumer and admin client
    kafka: Dict[str, Any] = field(default_factory=dict)
    # Passed as storage_options to deltalake
    storage_options: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_properties(cls, props: Mapping[str, Any]) -> "SinkConfig":
        """Build a config from a flat property set.

        Unknown ``sink.*`` keys are ignored. ``sink.kafka.*`` values are kept
        verbatim; LogConnection types them per client constructor.
        """
        kafka = properties_with_prefix(props, KAFKA_PROPERTY_PREFIX)
        storage_options = {
            key: str(value)
            for key, value in properties_with_prefix(props, STORAGE_PROPERTY_PREFIX).items()
        }

        return cls(
            coordinator_topic=str(props.get(COORDINATOR_TOPIC_PROP, "")),
            commit_group_id=str(props.get(COMMIT_GROUP_ID_PROP, "")),
            table_path=str(props.get(TABLE_PATH_PROP, "")),
            commit_interval_ms=int(props.get(COMMIT_INTERVAL_MS_PROP, DEFAULT_COMMIT_INTERVAL_MS)),
            target_file_rows=int(props.get(TARGET_FILE_ROWS_PROP, DEFAULT_TARGET_FILE_ROWS)),
            kafka=kafka,
            storage_options=storage_options,
        )

    @property
    def bootstrap_servers(self) -> str:
        servers = self.kafka.get("bootstrap_servers", "")
        if isinstance(servers, (list, tuple)):
            return ",".join(servers)
        return str(servers)

    def validate(self, require_table: bool = False) -> None:
        """Validate configuration for correctness and constraints.

        Args:
            require_table: Also require the table settings used by the
                commit buffer. Channel-only processes leave this off.
        """
        if not self.coordinator_topic:
            raise ValueError(f"{COORDINATOR_TOPIC_PROP} is required")
        if not self.commit_group_id:
            raise ValueError(f"{COMMIT_GROUP_ID_PROP} is required")
        if not self.bootstrap_servers:
            raise ValueError(f"{KAFKA_PROPERTY_PREFIX}bootstrap_servers is required")
        if require_table and not self.table_path:
            raise ValueError(f"{TABLE_PATH_PROP} is required")

        if self.commit_interval_ms < 0:
            raise ValueError(
                f"{COMMIT_INTERVAL_MS_PROP} must be >= 0, got {self.commit_interval_ms}"
            )
        if self.target_file_rows < 1:
            raise ValueError(
                f"{TARGET_FILE_ROWS_PROP} must be >= 1, got {self.target_file_rows}"
            )

        self._validate_kafka_settings(self.kafka, KAFKA_PROPERTY_PREFIX.rstrip("."))

    @staticmethod
    def _validate_enum(
        settings: Dict[str, Any],
        key: str,
        valid_values: List[Any],
        context: str
    ) -> None:
        """Validate that a setting's value is in a list of valid values."""
        if key in settings and settings[key] not in valid_values:
            raise ValueError(
                f"{context}: {key} must be one of {valid_values}, "
                f"got '{settings[key]}'"
            )

    @staticmethod
    def _validate_min(
        settings: Dict[str, Any],
        key: str,
        min_value: float,
        context: str
    ) -> None:
        if key not in settings:
            return
        value = settings[key]
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{context}: {key} must be a number, got {value!r}") from e
        if number < min_value:
            raise ValueError(f"{context}: {key} must be >= {min_value}, got {value}")

    def _validate_kafka_settings(self, settings: Dict[str, Any], context: str) -> None:
        """Validate client settings shared by producer, consumer and admin."""
        self._validate_enum(settings, "acks", ["0", "1", "-1", "all", 0, 1, -1], context)
        self._validate_enum(
            settings, "compression_type", [None, "gzip", "snappy", "lz4", "zstd"], context
        )
        self._validate_enum(
            settings,
            "security_protocol",
            ["PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL"],
            context,
        )
        self._validate_min(settings, "request_timeout_ms", 1, context)
        self._validate_min(settings, "linger_ms", 0, context)

    def to_dict(self) -> Dict[str, Any]:
        """Config as a dict with secrets in kafka/storage settings masked."""
        data = asdict(self)
        for section in ("kafka", "storage_options"):
            data[section] = {
                key: ("***" if _is_secret_key(key) else value)
                for key, value in data[section].items()
            }
        return data


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in ("password", "secret", "token", "key"))


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> SinkConfig:
    """Load sink configuration from a YAML file.

    Args:
        config_path: YAML file (default: src/config/config.yaml)
        overrides: Nested dict merged over the ``sink:`` section

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the ``sink:`` section is missing or validation fails
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"See src/config/config.yaml.example for the expected structure"
        )

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "sink" not in yaml_data:
        raise ValueError(
            "Invalid config file: missing 'sink:' section\n"
            "See config.yaml.example for correct structure"
        )

    sink_section = yaml_data["sink"]
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        sink_section = _deep_merge(sink_section, overrides)

    props = _flatten(sink_section, "sink.")
    config = SinkConfig.from_properties(props)

    logger.debug(
        f"Configuration loaded: topic={config.coordinator_topic}, "
        f"commit_group={config.commit_group_id}, table={config.table_path or '-'}"
    )

    config.validate()
    return config


_sink_config: Optional[SinkConfig] = None


def get_config() -> SinkConfig:
    """Get or load the singleton sink config instance."""
    global _sink_config
    if _sink_config is None:
        _sink_config = load_config()
    return _sink_config


def set_config(config: SinkConfig) -> None:
    """Set the singleton sink config instance (useful for testing)."""
    global _sink_config
    _sink_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _sink_config
    _sink_config = None


def _cli_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Delta Sink Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show the effective configuration (secrets masked)
  python -m config.config --show

  # Use a custom config file, JSON output for automation
  python -m config.config --config /path/to/config.yaml --validate --json
        """,
    )
    parser.add_argument("--validate", action="store_true", help="Validate configuration")
    parser.add_argument("--show", action="store_true", help="Display effective configuration")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml file (default: src/config/config.yaml)",
    )
    parser.add_argument(
        "--require-table",
        action="store_true",
        help="Also require the table settings used by the commit buffer",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=PROJECT_ROOT / ".env",
        help="Environment file for ${VAR} expansion (default: .env at project root)",
    )
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    # Variables already set in the environment win over the file
    load_dotenv(args.env_file)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if not args.validate and not args.show:
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
        if args.require_table:
            config.validate(require_table=True)
    except (FileNotFoundError, ValueError) as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        return 1

    output: Dict[str, Any] = {}
    if args.validate:
        if args.json:
            output["validation"] = {"passed": True, "errors": []}
        else:
            print("✓ Configuration validation passed")
            print(f"  - Coordinator topic: {config.coordinator_topic}")
            print(f"  - Commit group: {config.commit_group_id}")
            if config.table_path:
                print(f"  - Table: {config.table_path}")

    if args.show:
        if args.json:
            output["config"] = config.to_dict()
        else:
            print("\nConfiguration:")
            print("=" * 80)
            print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))
            print("=" * 80)

    if args.json:
        print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
