"""Configuration loading for the delta sink.

Main Functions
--------------

    - SinkConfig.from_properties(): Build config from a flat property set
    - load_config(): Load configuration from config.yaml
    - get_config() / set_config() / reset_config(): Singleton access

Usage Examples
--------------

    >>> from config import SinkConfig
    >>> config = SinkConfig.from_properties({
    ...     "sink.coordinator.topic": "control-delta",
    ...     "sink.commit.group.id": "cg-control-delta",
    ...     "sink.kafka.bootstrap_servers": "localhost:9092",
    ... })
    >>> config.kafka
    {'bootstrap_servers': 'localhost:9092'}
"""

from config.config import (
    COMMIT_GROUP_ID_PROP,
    COMMIT_INTERVAL_MS_PROP,
    COORDINATOR_TOPIC_PROP,
    KAFKA_PROPERTY_PREFIX,
    STORAGE_PROPERTY_PREFIX,
    TABLE_PATH_PROP,
    TARGET_FILE_ROWS_PROP,
    SinkConfig,
    get_config,
    load_config,
    properties_with_prefix,
    reset_config,
    set_config,
)

__all__ = [
    "SinkConfig",
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "properties_with_prefix",
    "KAFKA_PROPERTY_PREFIX",
    "STORAGE_PROPERTY_PREFIX",
    "COORDINATOR_TOPIC_PROP",
    "COMMIT_GROUP_ID_PROP",
    "TABLE_PATH_PROP",
    "COMMIT_INTERVAL_MS_PROP",
    "TARGET_FILE_ROWS_PROP",
]
