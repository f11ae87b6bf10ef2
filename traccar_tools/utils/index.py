"""
Traccar Tools
Copyright (C) 2024 Traccar Tools contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import logging
import os
import subprocess
import sys
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional, Union

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def log_message(message: str, level: str = "INFO"):
    """
    Log a message through the shared tool logger.
    Args:
        message (str): The message to log.
        level (str): Log level (e.g., 'INFO', 'ERROR').
    """
    if level == "ERROR":
        logging.error(message)
    elif level == "WARNING":
        logging.warning(message)
    elif level == "DEBUG":
        logging.debug(message)
    else:
        logging.info(message)


def setup_tool_logging(log_file: Union[str, Path], verbose: bool = False) -> None:
    """
    Log to stdout and to the dedicated tool log file.

    The tool log is kept apart from Traccar's own logs and is the only
    durable record of what an operator ran and in which order.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)
    root_logger.addHandler(console_handler)

    log_path = Path(log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        log_message(f"Cannot open tool log {log_path}: {e}", "WARNING")

    logging.info("=" * 80)
    logging.info("TRACCAR TOOLS SESSION STARTED")
    logging.info(f"Command: {' '.join(sys.argv)}")
    logging.info(f"Working Directory: {os.getcwd()}")
    logging.info("=" * 80)


def run_command(command: List[str], input_text: Optional[str] = None,
                env: Optional[Dict[str, str]] = None,
                timeout: Optional[int] = None) -> subprocess.CompletedProcess:
    """
    Run a command, capturing its output, and log what was run.

    Never raises on a non-zero exit; callers decide what a failure means.
    """
    log_message(f"Running: {' '.join(command)}", "DEBUG")
    result = subprocess.run(
        command,
        input=input_text,
        capture_output=True,
        text=True,
        env=env,
        timeout=timeout
    )
    if result.returncode != 0:
        log_message(f"Command exited {result.returncode}: {' '.join(command)}", "DEBUG")
    return result


def tail_file(path: Union[str, Path], lines: int = 100) -> List[str]:
    """Return the last `lines` lines of a text file, or an empty list if it is missing."""
    try:
        with open(path, 'r', errors='replace') as f:
            return [line.rstrip('\n') for line in deque(f, maxlen=lines)]
    except FileNotFoundError:
        return []
