"""Logging setup."""

import logging
from pathlib import Path
from typing import Optional

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'


def setup_logging(log_dir: Optional[Path] = None, verbose: bool = False) -> Path:
    """Attach a debug file log under ``log_dir`` and a console log; returns the log file."""
    log_dir = log_dir or (Path.home() / ".cache" / "mclaunch")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "launcher.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # Calling twice (CLI subcommands, tests) must not duplicate output.
    for handler in list(root.handlers):
        if getattr(handler, "_mclaunch", False):
            root.removeHandler(handler)
            handler.close()

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    file_handler._mclaunch = True
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler._mclaunch = True
    root.addHandler(console_handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return log_file
