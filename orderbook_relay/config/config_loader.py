"""
ConfigLoader - 服务配置加载器

职责：
- 从 JSON 文件加载配置（可选）
- 使用 Pydantic 模型校验
- 环境变量覆盖文件中的配置

优先级：环境变量 > JSON 文件 > 模型默认值
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from orderbook_relay.exceptions import ConfigError

logger = logging.getLogger(__name__)


# ========== Pydantic 模型定义 ==========

class FeedConfig(BaseModel):
    """行情源配置"""
    exchange_id: str = "okx"
    symbol: str = "BTC/USDT"
    fetch_depth: int = Field(default=50, ge=1, le=5000)
    use_demo: bool = False
    use_mock: bool = False
    timeout_ms: int = Field(default=10000, ge=100, le=120000)


class PollerConfig(BaseModel):
    """轮询配置"""
    interval_seconds: float = Field(default=2.0, gt=0, le=3600)
    max_attempts: int = Field(default=3, ge=1, le=20)
    retry_delay_seconds: float = Field(default=0.2, ge=0, le=60)
    stale_after_seconds: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _default_stale_threshold(self):
        if self.stale_after_seconds is None:
            self.stale_after_seconds = self.interval_seconds * 3
        return self


class BookConfig(BaseModel):
    """订单簿 / 模拟配置"""
    top_k: int = Field(default=10, ge=1, le=500)
    fill_tolerance: float = Field(default=1e-12, ge=0)


class BroadcastConfig(BaseModel):
    """广播配置"""
    max_subscribers: int = Field(default=100, ge=1, le=100000)
    send_timeout_seconds: float = Field(default=5.0, gt=0, le=300)
    queue_size: int = Field(default=256, ge=1, le=100000)
    channel: str = Field(default="inprocess", pattern="^(inprocess|redis)$")


class RedisConfig(BaseModel):
    """Redis 配置（仅 channel=redis 时使用）"""
    url: Optional[str] = None
    host: str = "localhost"
    port: int = Field(6379, ge=1, le=65535)
    db: int = Field(0, ge=0, le=15)
    password: Optional[str] = None
    reconnect_delay_seconds: float = Field(1.0, gt=0, le=60)


class ApiConfig(BaseModel):
    """HTTP 服务配置"""
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = Field("INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")


class RelayConfig(BaseModel):
    """完整服务配置"""
    feed: FeedConfig = FeedConfig()
    poller: PollerConfig = PollerConfig()
    book: BookConfig = BookConfig()
    broadcast: BroadcastConfig = BroadcastConfig()
    redis: RedisConfig = RedisConfig()
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = LoggingConfig()


# 环境变量 -> (配置段, 字段)
ENV_OVERRIDES = {
    "RELAY_EXCHANGE": ("feed", "exchange_id"),
    "RELAY_SYMBOL": ("feed", "symbol"),
    "RELAY_FETCH_DEPTH": ("feed", "fetch_depth"),
    "RELAY_USE_DEMO": ("feed", "use_demo"),
    "RELAY_USE_MOCK": ("feed", "use_mock"),
    "RELAY_POLL_INTERVAL": ("poller", "interval_seconds"),
    "RELAY_FETCH_ATTEMPTS": ("poller", "max_attempts"),
    "RELAY_RETRY_DELAY": ("poller", "retry_delay_seconds"),
    "RELAY_STALE_AFTER": ("poller", "stale_after_seconds"),
    "RELAY_TOP_K": ("book", "top_k"),
    "RELAY_MAX_SUBSCRIBERS": ("broadcast", "max_subscribers"),
    "RELAY_QUEUE_SIZE": ("broadcast", "queue_size"),
    "RELAY_CHANNEL": ("broadcast", "channel"),
    "REDIS_URL": ("redis", "url"),
    "REDIS_HOST": ("redis", "host"),
    "REDIS_PORT": ("redis", "port"),
    "REDIS_PASSWORD": ("redis", "password"),
    "RELAY_API_HOST": ("api", "host"),
    "RELAY_API_PORT": ("api", "port"),
    "LOG_LEVEL": ("logging", "level"),
}


# ========== ConfigLoader 类 ==========

class ConfigLoader:
    """
    配置加载器

    使用示例：
        >>> loader = ConfigLoader('config/relay.json')
        >>> config = loader.load()
    """

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)

        if not self.config_path.exists():
            logger.error(f"配置文件不存在: {self.config_path}")
            raise FileNotFoundError(f"配置文件不存在: {self.config_path}")

        logger.info(f"ConfigLoader 初始化: {self.config_path}")

    def load_dict(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"❌ JSON 解析失败: {e}")
            raise ConfigError(f"invalid JSON in {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"config root must be an object: {self.config_path}")
        return data

    def load(self) -> RelayConfig:
        config = build_config(self.load_dict())
        logger.info(f"✅ 配置加载成功: {self.config_path}")
        return config


def build_config(data: Dict[str, Any]) -> RelayConfig:
    try:
        return RelayConfig(**data)
    except ValidationError as e:
        logger.error(f"❌ Pydantic 配置验证失败: {e}")
        raise ConfigError(str(e)) from e


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(environ: Optional[Dict[str, str]] = None) -> RelayConfig:
    """
    从环境变量加载配置

    CONFIG_PATH 指向 JSON 文件时先加载文件，再用环境变量覆盖。
    """
    environ = os.environ if environ is None else environ

    data: Dict[str, Any] = {}
    config_path = environ.get("CONFIG_PATH")
    if config_path:
        data = ConfigLoader(config_path).load_dict()

    for env_key, (section, field) in ENV_OVERRIDES.items():
        raw = environ.get(env_key)
        if raw is None or raw == "":
            continue
        value: Any = _parse_bool(raw) if field in ("use_demo", "use_mock") else raw
        data.setdefault(section, {})[field] = value
        logger.debug(f"环境变量覆盖: {env_key} -> {section}.{field}")

    config = build_config(data)
    logger.info(
        f"配置: symbol={config.feed.symbol}, exchange={config.feed.exchange_id}, "
        f"interval={config.poller.interval_seconds}s, top_k={config.book.top_k}, "
        f"channel={config.broadcast.channel}, mock={config.feed.use_mock}"
    )
    return config
