"""
Order Book Relay 主入口

负责：
- 加载环境变量和配置
- 配置日志
- 初始化服务并注入 API
- 启动 HTTP / WebSocket 服务（轮询随应用生命周期启动和停止）
"""

import argparse
import sys

from orderbook_relay.api.api_server import initialize_dependencies, start_server
from orderbook_relay.config.config_loader import load_config_from_env
from orderbook_relay.core.service import OrderBookService
from orderbook_relay.exceptions import ConfigError
from orderbook_relay.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Order Book Relay")
    parser.add_argument("--symbol", help="交易对，例如 BTC/USDT（覆盖 RELAY_SYMBOL）")
    parser.add_argument("--mock", action="store_true", help="使用模拟行情源")
    parser.add_argument("--port", type=int, help="HTTP 端口（覆盖 RELAY_API_PORT）")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config_from_env()
    except (ConfigError, FileNotFoundError) as e:
        print(f"❌ 配置加载失败: {e}", file=sys.stderr)
        return 1

    if args.symbol:
        config.feed.symbol = args.symbol
    if args.mock:
        config.feed.use_mock = True
    if args.port:
        config.api.port = args.port

    setup_logging(level=config.logging.level)

    logger.info("=" * 60)
    logger.info("🚀 Order Book Relay 启动")
    logger.info(f"交易对: {config.feed.symbol} @ {config.feed.exchange_id}")
    logger.info(f"轮询间隔: {config.poller.interval_seconds}s, Top-K: {config.book.top_k}")
    logger.info("=" * 60)

    service = OrderBookService(config)
    initialize_dependencies(service)

    try:
        start_server(host=config.api.host, port=config.api.port)
    except KeyboardInterrupt:
        logger.info("收到中断信号，退出")
    return 0


if __name__ == "__main__":
    sys.exit(main())
