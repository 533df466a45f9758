# logging_config.py
import sys
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

def configure_logging(level: str = "INFO") -> None:
    """
    Route every logger through a single stdout handler.

    Safe to call more than once (tests build several apps): existing root
    handlers are replaced rather than stacked.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if root.hasHandlers():
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # boto chatter is only useful when debugging
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
