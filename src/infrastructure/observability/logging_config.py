"""
Logging setup shared by the entrypoints.

Library modules only create module loggers (logging.getLogger(__name__));
handlers are installed here, once, by whichever entrypoint runs.
"""

import logging

_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
_HANDLER_NAME = "gh-actions-status"


def configure_logging(level: str = "INFO") -> None:
    """Attach a stderr handler to the root logger and set its level. Idempotent."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    # Requests are logged by ApiAgent at debug level.
    logging.getLogger("httpx").setLevel(logging.WARNING)
