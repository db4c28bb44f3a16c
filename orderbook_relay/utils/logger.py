"""
日志配置模块

- 配置根 Logger（所有模块通过 logging.getLogger(__name__) 自动继承）
- 控制台输出到 Stdout
- 文件输出（轮转日志）
- 避免重复添加 Handler
"""

import logging
import logging.handlers
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str = "INFO", log_to_file: bool = True):
    """
    配置根 Logger

    Args:
        level (str): 日志级别（DEBUG/INFO/WARNING/ERROR）
        log_to_file (bool): 是否写入轮转日志文件
    """
    root_logger = logging.getLogger()

    # 清理旧 Handlers（避免重复）
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        logs_directory = os.getenv('LOGS_DIRECTORY', 'logs')
        log_file = os.path.join(logs_directory, 'orderbook_relay.log')
        try:
            os.makedirs(logs_directory, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=10485760,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            # 文件 Handler 失败不影响系统运行
            print(f"警告: 无法创建日志文件: {e}", file=sys.stderr)

    # 降低第三方库的日志级别
    logging.getLogger('ccxt').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"日志系统初始化完成: level={level}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
