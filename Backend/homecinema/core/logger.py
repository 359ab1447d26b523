import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once. Uvicorn keeps its own handlers.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_homecinema", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._homecinema = True
        root.addHandler(handler)
