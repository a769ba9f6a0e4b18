"""Logging helpers for routing records to stdout or stderr."""

import logging


class StreamRoutingFilter(logging.Filter):
    """Filter that routes log records to one output stream.

    A record carrying a ``stream`` extra goes to that stream. Otherwise
    records below WARNING go to stdout and the rest to stderr.

    Parameters
    ----------
    stream_type : str
        Stream type to allow: "stdout" or "stderr"
    """

    def __init__(self, stream_type: str) -> None:
        if stream_type not in ("stdout", "stderr"):
            raise ValueError(f"Unknown stream type: {stream_type}")
        super().__init__()
        self.stream_type = stream_type

    def filter(self, record: logging.LogRecord) -> bool:
        """Return True if ``record`` belongs to this handler's stream."""
        record_stream = getattr(record, "stream", None)

        if record_stream is None:
            record_stream = "stdout" if record.levelno < logging.WARNING else "stderr"

        return record_stream == self.stream_type


def configure_logging(stdout, stderr, level: int = logging.INFO) -> None:
    """Install the stdout/stderr handler pair on the root logger.

    Parameters
    ----------
    stdout : TextIO
        Stream receiving informational records
    stderr : TextIO
        Stream receiving warnings and errors
    level : int
        Root logger level
    """
    stdout_handler = logging.StreamHandler(stdout)
    stdout_handler.setFormatter(logging.Formatter("%(message)s"))
    stdout_handler.addFilter(StreamRoutingFilter("stdout"))

    stderr_handler = logging.StreamHandler(stderr)
    stderr_handler.setFormatter(logging.Formatter("%(message)s"))
    stderr_handler.addFilter(StreamRoutingFilter("stderr"))

    logging.basicConfig(
        level=level,
        handlers=[stdout_handler, stderr_handler],
        force=True,
    )

    for noisy_module in ("botocore", "boto3", "urllib3", "kubernetes"):
        logging.getLogger(noisy_module).setLevel(logging.WARNING)
