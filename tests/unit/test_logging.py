import logging

import structlog

from regforge.config import get_settings
from regforge.logging import bind_run, clear_context, configure_from_settings, configure_logging


def test_configure_logging_sets_level_and_single_handler() -> None:
    configure_logging("debug")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)


def test_configure_from_settings_uses_log_level() -> None:
    configure_from_settings(get_settings())
    assert logging.getLogger().level == logging.WARNING


def test_bind_run_populates_contextvars() -> None:
    bind_run("myrepo", "")
    assert structlog.contextvars.get_contextvars() == {"registry": "myrepo", "env": "-"}
    clear_context()
    assert structlog.contextvars.get_contextvars() == {}
