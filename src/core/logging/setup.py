"""
Process-wide logging setup for sink processes.

A coordinator or worker process calls ``setup_logging`` once at startup:

- console: human-readable lines (``ConsoleFormatter``) at INFO
- file: JSON lines (``JSONFormatter``) at DEBUG under ``logs/<date>/``,
  rotated hourly with rotated files moved to ``archive/``

Containers that ship stdout set ``log_to_stdout=True`` and get the console
handler only, at the file level.
"""

import logging
import shutil
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_ROTATION_WHEN = "H"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 24
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

PLAIN_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

# Client libraries that log every fetch, metadata refresh or object-store call
NOISY_LOGGERS = {
    "aiokafka": logging.WARNING,
    "kafka": logging.WARNING,
    "deltalake": logging.WARNING,
    "urllib3": logging.WARNING,
}


class ArchivingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """
    Timed rotation that keeps the live directory down to the current file.

    After each rollover, rotated files (``<name>.log.<suffix>``) are moved
    into ``archive_dir`` (default: ``archive/`` next to the live file)::

        logs/2026-01-05/delta-sink_0105_1430.log
        logs/2026-01-05/archive/delta-sink_0105_1430.log.2026-01-05_14
    """

    def __init__(self, filename, when="midnight", interval=1, backupCount=0,
                 encoding=None, delay=False, utc=False, archive_dir=None):
        super().__init__(filename, when, interval, backupCount, encoding, delay, utc)
        live = Path(self.baseFilename)
        self.archive_dir = Path(archive_dir) if archive_dir else live.parent / "archive"
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def _rotated_files(self):
        live = Path(self.baseFilename)
        return [p for p in live.parent.glob(f"{live.name}.*") if p != live]

    def doRollover(self):
        super().doRollover()
        for rotated in self._rotated_files():
            try:
                shutil.move(str(rotated), str(self.archive_dir / rotated.name))
            except OSError as e:
                # Not through logging: this handler is the one failing
                print(f"Warning: could not archive {rotated}: {e}", file=sys.stderr)


def get_log_file_path(log_dir: Path, name: str = "delta-sink") -> Path:
    """``{log_dir}/{YYYY-MM-DD}/{name}_{MMDD}_{HHMM}.log`` for the current time."""
    now = datetime.now()
    return log_dir / f"{now:%Y-%m-%d}" / f"{name}_{now:%m%d}_{now:%H%M}.log"


def _file_handler(
    log_file: Path,
    json_format: bool,
    level: int,
    when: str,
    interval: int,
    backup_count: int,
) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = ArchivingTimedRotatingFileHandler(
        log_file,
        when=when,
        interval=interval,
        backupCount=backup_count,
        encoding="utf-8",
        archive_dir=log_file.parent / "archive",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT))
    return handler


def setup_logging(
    name: str = "delta_sink",
    stage: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Replace the root logger's handlers with the sink's console/file pair.

    Args:
        name: Logger returned to the caller; also names the log file
            (underscores become dashes)
        stage: Role of this process on every record ("coordinator", "worker")
        log_dir: Root directory for log files (default: ./logs)
        json_format: JSON lines in the file instead of plain text
        console_level: Console level when a file handler is also installed
        file_level: File level; also the console level in stdout-only mode
        rotation_when: TimedRotatingFileHandler ``when`` ('H', 'midnight', ...)
        rotation_interval: TimedRotatingFileHandler ``interval``
        backup_count: Rotated files kept
        suppress_noisy: Raise Kafka client and storage loggers to WARNING
        worker_id: Worker identifier on every record
        log_to_stdout: Console only, no file

    Returns:
        The logger called ``name``
    """
    if worker_id:
        set_log_context(worker_id=worker_id)
    if stage:
        set_log_context(stage=stage)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ConsoleFormatter())

    log_file = None
    if log_to_stdout:
        console.setLevel(file_level)
    else:
        console.setLevel(console_level)
        log_file = get_log_file_path(log_dir or DEFAULT_LOG_DIR, name=name.replace("_", "-"))
        root.addHandler(
            _file_handler(
                log_file,
                json_format,
                file_level,
                rotation_when,
                rotation_interval,
                backup_count,
            )
        )
    root.addHandler(console)

    if suppress_noisy:
        for noisy, level in NOISY_LOGGERS.items():
            logging.getLogger(noisy).setLevel(level)

    logger = logging.getLogger(name)
    logger.debug(f"Logging initialized: file={log_file or 'stdout-only'}, json={json_format}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger; call with ``__name__``."""
    return logging.getLogger(name)
