"""Centralized logging setup helper used by the runners.

Call it before importing modules that may configure logging themselves (matplotlib).
"""
import logging
import sys
import os
import datetime

DEFAULT_FORMAT = "%(asctime)s [%(levelname)-7s] %(filename)s:%(lineno)d %(message)s"
DEFAULT_DATEFMT = "%H:%M:%S"


def ensure_logging(level: int = logging.INFO, *, force: bool = False) -> None:
    """Ensure the root logger is configured with a StreamHandler to stdout.

    - If the root logger has no handlers, configure one via basicConfig.
    - If handlers exist and `force` is True, reconfigure.
    - Otherwise, set the root logger level to `level` without replacing handlers.

    This is safe to call multiple times.
    """
    root = logging.getLogger()
    if force or not root.handlers:
        logging.basicConfig(level=level, format=DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT, stream=sys.stdout, force=force)
    else:
        root.setLevel(level)


def quiet_third_party_loggers() -> None:
    logging.getLogger("matplotlib").setLevel(logging.WARNING)
    logging.getLogger("matplotlib.font_manager").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def _safe_tag(run_tag: str) -> str:
    return "".join(c if c.isalnum() or c in '._-' else '_' for c in (run_tag or "run").lower())


def configure_run_logging(run_tag: str, *, log_dir: str = "results/logs",
                          console_level: int = logging.INFO, file_level: int = logging.DEBUG,
                          force: bool = False) -> str:
    """Configure logging for one run.

    - Ensures a console StreamHandler exists (INFO by default).
    - Adds a per-run file handler (DEBUG by default) named after `run_tag` and the wall-clock time.
    - Returns the absolute path to the logfile created.

    If `force` is True the root handlers will be replaced.
    """
    ensure_logging(level=console_level, force=force)
    quiet_third_party_loggers()

    os.makedirs(log_dir, exist_ok=True)

    safe_tag = _safe_tag(run_tag)
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    logfile = os.path.join(log_dir, f"{safe_tag}_{timestamp}.log")

    root = logging.getLogger()

    if not force:
        for h in root.handlers:
            if isinstance(h, logging.FileHandler) and safe_tag in os.path.basename(h.baseFilename):
                return os.path.abspath(h.baseFilename)

    # Example: "17:22:40 [INFO   ] harness.py:65 Scenario created."
    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT)

    console_exists = any(type(h) is logging.StreamHandler and getattr(h, 'stream', None) is sys.stdout
                         for h in root.handlers)
    if not console_exists:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(console_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)
    else:
        for h in root.handlers:
            if type(h) is logging.StreamHandler:
                h.setLevel(console_level)
                h.setFormatter(formatter)

    fh = logging.FileHandler(logfile, mode='a', encoding='utf-8')
    fh.setLevel(file_level)
    fh.setFormatter(formatter)
    root.addHandler(fh)

    # Keep root level at the lower of console/file so file captures debug
    root.setLevel(min(console_level, file_level))

    return os.path.abspath(logfile)
