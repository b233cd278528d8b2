import logging

ROOT_LOGGER = "factory"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name=ROOT_LOGGER):
    """
    Loggers live under the "factory" namespace (factory.inventory, factory.ledger, ...).
    The stream handler sits on the namespace root only, so children propagate to it
    and nothing is printed twice.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        root.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(ch)
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def set_level(level):
    """Accepts a logging level or its name ("DEBUG", "info", ...)."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level!r}")
    get_logger().setLevel(level)
