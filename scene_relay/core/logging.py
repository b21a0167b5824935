import logging
import sys

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "extra"}


class SafeExtraFormatter(logging.Formatter):
    """
    Formatter that collects the fields passed through `extra=` into a single
    `%(extra)s` column, so records without extras still format.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.extra = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED
        }
        return super().format(record)


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)

    formatter = SafeExtraFormatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s | %(extra)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()
    root.addHandler(handler)

    # python-osc and uvicorn are chatty at DEBUG
    for name in ("pythonosc", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)
