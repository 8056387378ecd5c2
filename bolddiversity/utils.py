"""
Helper Functions and Utilities

This module provides common utility functions used throughout the BOLDDiversity
package: logging configuration, output directory handling, dataset naming and
timing helpers.

Key Utilities:
1. Logging Configuration
   - Centralized logging setup for the ``bolddiversity`` package logger
   - Console and optional file output

2. File Operations
   - Cross-platform path handling using pathlib
   - Automatic directory creation
   - Dataset name extraction from BOLD export filenames

3. General Helpers
   - Filename sanitization for site names (countries contain spaces)
   - Elapsed time formatting and timestamps

Example Usage:
    >>> from bolddiversity.utils import setup_logging, extract_dataset_name
    >>> logger = setup_logging(log_level="DEBUG")
    >>> extract_dataset_name("Lepidoptera_BOLD_data.tsv")
    'Lepidoptera'
"""

from typing import Optional, Union
from pathlib import Path
from datetime import datetime
import logging
import re
import sys

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for BOLDDiversity.

    Sets up the package logger with console and optional file output.

    Parameters
    ----------
    log_level : str, optional
        Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console (default: None)
    format_string : str, optional
        Custom format string for log messages. If None, uses default format

    Returns
    -------
    logging.Logger
        Configured package logger

    Notes
    -----
    The default format includes timestamp, level, and message:
    [2025-11-03 10:30:45] INFO: Building community matrices
    """
    package_logger = logging.getLogger("bolddiversity")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    package_logger.handlers.clear()

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s: %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

        package_logger.info(f"Logging to file: {log_file}")

    return package_logger


# ============================================================================
# File I/O and Path Handling
# ============================================================================

def create_output_directory(output_dir: Union[str, Path]) -> Path:
    """
    Create output directory if it doesn't exist.

    Raises
    ------
    OSError
        If directory cannot be created due to permissions or other issues
    """
    path = Path(output_dir)

    try:
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created/verified output directory: {path}")
        return path
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        raise


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for cross-platform compatibility.

    Examples
    --------
    >>> sanitize_filename("Costa Rica (north)")
    'Costa_Rica_north'
    """
    safe = filename.replace(' ', '_')
    safe = re.sub(r'[^\w\-.]', '_', safe)
    safe = re.sub(r'_+', '_', safe)
    return safe.strip('_')


def extract_dataset_name(file_path: Union[str, Path]) -> str:
    """
    Extract a dataset name from a BOLD TSV export filename.

    Removes common suffixes (_BOLD, _data, _records, _download) and sanitizes
    the remainder for use in output paths.

    Examples
    --------
    >>> extract_dataset_name("/data/Lepidoptera_BOLD.tsv")
    'Lepidoptera'
    >>> extract_dataset_name("Arctic Bees_records.tsv")
    'Arctic_Bees'
    """
    basename = Path(file_path).stem

    suffixes_to_remove = [
        '_BOLD', '_bold',
        '_data', '_Data',
        '_records', '_Records',
        '_download', '_Download',
    ]

    cleaned = basename
    for suffix in suffixes_to_remove:
        if cleaned.endswith(suffix):
            cleaned = cleaned[:-len(suffix)]

    cleaned = sanitize_filename(cleaned)

    # If we ended up with something too short, use original
    if len(cleaned) < 3:
        cleaned = sanitize_filename(basename)

    return cleaned


# ============================================================================
# Time Helpers
# ============================================================================

def format_elapsed_time(seconds: float) -> str:
    """
    Format elapsed time in human-readable format.

    Examples
    --------
    >>> format_elapsed_time(45)
    '45s'
    >>> format_elapsed_time(90)
    '1.5m'
    """
    if seconds < 60:
        return f"{seconds:.0f}s"

    minutes = seconds / 60
    if minutes < 60:
        return f"{minutes:.1f}m"

    hours = minutes / 60
    return f"{int(hours)}h {int(minutes % 60)}m"


def get_timestamp() -> str:
    """Get current timestamp string in ISO format (seconds resolution)."""
    return datetime.now().strftime("%Y-%m-%dT%H:%M:%S")
