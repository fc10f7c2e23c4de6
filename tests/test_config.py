"""
Configuration tests.
"""

import logging

from starwire.config import (
    DEFAULT_TIMEOUT_MS,
    ClientConfig,
    LoggingConfig,
    StarwireConfig,
    configure_logging,
)


class TestStarwireConfig:
    """Defaults, dictionaries and environment variables"""

    def test_defaults(self):
        config = StarwireConfig()
        assert config.client.default_timeout_ms == DEFAULT_TIMEOUT_MS == 10_000
        assert config.client.reject_pending_on_disconnect is False
        assert config.server.ws_path == "/ws"
        assert config.render.max_depth == 64

    def test_from_dict_ignores_unknown_keys(self):
        config = StarwireConfig.from_dict({
            "client": {"default_timeout_ms": 500, "bogus": 1},
            "server": {"port": 8080},
            "unknown_section": {"x": 1},
        })
        assert config.client.default_timeout_ms == 500
        assert config.server.port == 8080
        assert not hasattr(config.client, "bogus")

    def test_round_trip_through_dict(self):
        config = StarwireConfig(client=ClientConfig(default_timeout_ms=250))
        assert StarwireConfig.from_dict(config.to_dict()) == config

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("STARWIRE_DEFAULT_TIMEOUT_MS", "2500")
        monkeypatch.setenv("STARWIRE_REJECT_PENDING_ON_DISCONNECT", "true")
        monkeypatch.setenv("STARWIRE_PORT", "9000")
        monkeypatch.setenv("STARWIRE_WS_PATH", "/live")
        monkeypatch.setenv("STARWIRE_MAX_DEPTH", "10")
        monkeypatch.setenv("STARWIRE_LOG_LEVEL", "debug")

        config = StarwireConfig.from_environment()
        assert config.client.default_timeout_ms == 2500
        assert config.client.reject_pending_on_disconnect is True
        assert config.server.port == 9000
        assert config.server.ws_path == "/live"
        assert config.render.max_depth == 10
        assert config.logging.level == "DEBUG"

    def test_configure_logging(self, tmp_path):
        log_file = tmp_path / "starwire.log"
        logger = configure_logging(LoggingConfig(level="DEBUG", file_path=str(log_file)))
        try:
            assert logger.name == "starwire"
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 1

            logging.getLogger("starwire.client").debug("hello")
            logger.handlers[0].flush()
            assert "hello" in log_file.read_text()
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)
