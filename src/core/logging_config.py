import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "[%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with a single rich console handler.

    Safe to call more than once: previously installed handlers are removed
    first so messages are never printed twice.
    """
    root = logging.getLogger()

    for handler in root.handlers[:]:
        handler.flush()
        handler.close()
        root.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root.addHandler(handler)
    root.setLevel(level.upper())

    # HTTP client chatter is only useful when debugging the translator
    if root.level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
