import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


class HumanFormatter(logging.Formatter):
    def format(self, record):
        timestamp = self.formatTime(record, self.datefmt)
        message = (
            f"[vmcontrol] {timestamp} {record.levelname.lower()} "
            f"{record.name} {record.getMessage()}"
        )
        if hasattr(record, "extra"):
            message = f"{message} | data={record.extra}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logger(name: str = "vmcontrol", logfile: str | None = None, level: str = "INFO"):
    """Configure `name` with a stderr handler and, if given, a rotating file.

    Warnings (including `ParseDegraded`) are captured into the same handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if logger.handlers:
        return logger

    formatter = HumanFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    # MCP stdio transport owns stdout, so the stream handler stays on stderr.
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if logfile:
        log_path = Path(logfile)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(str(log_path), maxBytes=5 * 1024 * 1024, backupCount=5)
        )

    warnings_logger = logging.getLogger("py.warnings")
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        warnings_logger.addHandler(handler)
    logger.propagate = False
    warnings_logger.propagate = False
    logging.captureWarnings(True)
    return logger
