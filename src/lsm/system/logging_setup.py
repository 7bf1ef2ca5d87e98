# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.01
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/system/logging_setup.py

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from lsm.config.manager import ConfigManager


def detect_repo_name(repo_path: Optional[Path] = None) -> Optional[str]:
    """Name used for the log file: the repository directory's name."""
    path = Path(repo_path) if repo_path else Path.cwd()
    name = path.resolve().name
    if name and name != "/":
        return name
    return None


def setup_logging(debug: bool = False, config: Optional[ConfigManager] = None) -> None:
    """Setup loguru logging for the entire application.

    Configures:
    - Console output: WARNING+ only (DEBUG+ with debug=True)
    - File output: DEBUG+ if log.dir is configured
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG" if debug else "WARNING",
        format="<level>{level}</level>: {message}",
        colorize=True
    )

    try:
        config = config or ConfigManager()
        log_dir = config.get("log.dir")
        if log_dir:
            log_dir = Path(log_dir).expanduser()
            log_dir.mkdir(parents=True, exist_ok=True)

            repo_name = detect_repo_name(config.repo_path) or "global"
            log_file = log_dir / f"lsm-{repo_name}.log"

            logger.add(
                log_file,
                level="DEBUG",
                format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
                rotation="10 MB",
                retention="30 days",
                compression="gz"
            )
            logger.debug(f"File logging enabled: {log_file}")

    except Exception as e:
        # logging problems must not stop the command
        logger.warning(f"Failed to setup file logging: {e}")
