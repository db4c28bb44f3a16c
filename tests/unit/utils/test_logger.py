"""
日志配置单元测试
"""

import logging
import logging.handlers

from orderbook_relay.utils.logger import setup_logging


class TestSetupLogging:

    def teardown_method(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()

    def test_console_only(self):
        setup_logging(level="DEBUG", log_to_file=False)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger('apscheduler').level == logging.WARNING

    def test_no_duplicate_handlers(self):
        setup_logging(log_to_file=False)
        setup_logging(log_to_file=False)
        assert len(logging.getLogger().handlers) == 1

    def test_rotating_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv('LOGS_DIRECTORY', str(tmp_path))

        setup_logging(level="INFO")

        handlers = logging.getLogger().handlers
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in handlers)
        assert (tmp_path / 'orderbook_relay.log').exists()
