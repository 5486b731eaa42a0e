import logging
import sys


class ContentLengthErrorFilter(logging.Filter):
    """Filter out h11 Content-Length mismatch errors.

    The errors don't affect client responses but create
    noisy logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if "Too much data for declared Content-Length" in msg:
            return False
        if "LocalProtocolError" in msg and "Content-Length" in msg:
            return False

        if record.exc_info:
            _, exc_value, _ = record.exc_info
            if exc_value and "Content-Length" in str(exc_value):
                return False

        return True


def setup_logging(level: int = logging.INFO) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(formatter)

    if not root_logger.hasHandlers():
        root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.error").addFilter(ContentLengthErrorFilter())

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.INFO)
    # Outbound Google calls log every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
