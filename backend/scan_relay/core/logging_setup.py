import logging

from scan_relay.core.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# Libraries that tend to emit verbose debug logs.
NOISY_LOGGERS = ("python_multipart", "multipart", "httpcore")


def configure_logging(settings: Settings) -> None:
    """
    Attach a console handler to the root logger and apply LOG_LEVEL.
    With LOG_JSON the request logger prints bare messages (already JSON).
    """
    root_logger = logging.getLogger()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Avoid adding duplicate handlers when the app is built more than once.
    if not any(getattr(h, "_scan_relay", False) for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler._scan_relay = True
        root_logger.addHandler(console_handler)
    root_logger.setLevel(level)

    request_logger = logging.getLogger("scan_relay.request")
    if settings.log_json:
        for h in request_logger.handlers[:]:
            request_logger.removeHandler(h)
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(message)s"))
        request_logger.addHandler(h)
        request_logger.propagate = False
    request_logger.setLevel(logging.INFO)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
