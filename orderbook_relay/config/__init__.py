from .config_loader import (
    ApiConfig,
    BookConfig,
    BroadcastConfig,
    ConfigLoader,
    FeedConfig,
    LoggingConfig,
    PollerConfig,
    RedisConfig,
    RelayConfig,
    build_config,
    load_config_from_env,
)

__all__ = [
    'ApiConfig',
    'BookConfig',
    'BroadcastConfig',
    'ConfigLoader',
    'FeedConfig',
    'LoggingConfig',
    'PollerConfig',
    'RedisConfig',
    'RelayConfig',
    'build_config',
    'load_config_from_env',
]
