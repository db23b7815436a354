import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Install a single stream handler on the root logger.
    Safe to call more than once (e.g. one app per test).
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_tradecal", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._tradecal = True  # type: ignore[attr-defined]
        root.addHandler(handler)
