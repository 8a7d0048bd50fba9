import logging
from datetime import datetime
from pathlib import Path

from config import LOG_DIR, LOG_LEVEL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ErrorLogHandler(logging.FileHandler):
    """ERROR and above, one file per process; the file appears on the first error."""

    def __init__(self, log_dir: Path):
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        super().__init__(log_dir / f"campus_records_errors_{stamp}.log",
                         encoding="utf-8", delay=True)
        self.setLevel(logging.ERROR)

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


def setup_logging(log_dir: Path | None = None, level: int | str | None = None) -> None:
    level = level or LOG_LEVEL.upper()
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    errors = ErrorLogHandler(Path(log_dir or LOG_DIR))
    errors.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, ErrorLogHandler):
            handler.close()
    root.setLevel(level)
    root.addHandler(console)
    root.addHandler(errors)

    # SQL echo stays off unless asked for explicitly
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
