"""
主入口单元测试
"""

from unittest.mock import patch

import pytest

import main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("CONFIG_PATH", "RELAY_SYMBOL", "RELAY_USE_MOCK", "RELAY_API_PORT", "RELAY_TOP_K", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


class TestMain:

    @patch('main.setup_logging')
    @patch('main.start_server')
    @patch('main.initialize_dependencies')
    def test_cli_overrides(self, mock_init, mock_start, mock_logging):
        assert main.main(["--mock", "--symbol", "ETH/USDT", "--port", "9001"]) == 0

        service = mock_init.call_args[0][0]
        assert service.symbol == "ETH/USDT"
        assert service.config.feed.use_mock is True
        mock_start.assert_called_once_with(host="0.0.0.0", port=9001)
        mock_logging.assert_called_once_with(level="INFO")

    @patch('main.start_server')
    def test_invalid_config_exits_with_error(self, mock_start, monkeypatch):
        monkeypatch.setenv("RELAY_TOP_K", "0")

        assert main.main([]) == 1
        mock_start.assert_not_called()

    @patch('main.start_server')
    def test_missing_config_file(self, mock_start, monkeypatch, tmp_path):
        monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "missing.json"))

        assert main.main([]) == 1
        mock_start.assert_not_called()
