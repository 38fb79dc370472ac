from loguru import logger

from utils.logging_setup import configure_logging


def test_configure_logging_respects_log_level(monkeypatch, capsys):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    configure_logging()

    logger.bind(client="postgresql").info("hidden")
    logger.bind(client="postgresql").warning("connection closed twice")
    logger.warning("no client bound")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "postgresql" in err
    assert "connection closed twice" in err
    assert "| - |" in err
