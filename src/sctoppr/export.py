"""
Export ToppFun results to xlsx, csv or tsv, optionally one file per cluster.

Example:
    from sctoppr import topp_save

    topp_save(topp_data, filename="toppFun_results", split=True, format="xlsx")
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from sctoppr.config import CLUSTER_COLUMN, DEFAULT_FILE_PREFIX, EXPORT_FORMATS
from sctoppr.errors import ConfigurationError

logger = logging.getLogger(__name__)

SHEET_NAME = "toppData"

# Characters that cannot appear in a file name on common filesystems
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_filename_part(value: object) -> str:
    """Make a cluster label safe to embed in a file name."""
    return _UNSAFE_FILENAME_CHARS.sub("_", str(value).strip())


def resolve_save_dir(save_dir: Optional[Union[str, Path]]) -> Path:
    """
    Return the target directory, defaulting to the working directory.

    Raises:
        OSError: if the directory does not exist or is not writable
    """
    directory = Path(save_dir) if save_dir is not None else Path.cwd()
    if not directory.is_dir():
        raise OSError(f"Save directory does not exist: {directory}")
    if not os.access(directory, os.W_OK):
        raise OSError(f"Save directory is not writable: {directory}")
    return directory


def write_table(frame: pd.DataFrame, path: Path, fmt: str) -> None:
    """Write one table with a header row and no index column."""
    if fmt == "xlsx":
        frame.to_excel(path, sheet_name=SHEET_NAME, index=False, engine="openpyxl")
    elif fmt == "csv":
        frame.to_csv(path, sep=",", index=False)
    else:
        frame.to_csv(path, sep="\t", index=False)


def topp_save(
    topp_data: pd.DataFrame,
    filename: Optional[str] = None,
    save_dir: Optional[Union[str, Path]] = None,
    split: bool = True,
    format: str = "xlsx",
) -> List[Path]:
    """
    Save ToppFun results, optionally split by cluster.

    Args:
        topp_data: Results from toppfun()
        filename: File name prefix (default "toppData")
        save_dir: Directory to save files in (default: current directory)
        split: Write one file per cluster named ``{filename}_{cluster}.{ext}``
        format: "xlsx" (or "spreadsheet"), "csv" or "tsv"

    Returns:
        Paths of the files written, in cluster order

    Raises:
        ConfigurationError: on an unknown format (nothing is written)
        OSError: if ``save_dir`` is missing or not writable
    """
    if format not in EXPORT_FORMATS:
        raise ConfigurationError(
            f"Invalid format {format!r}; choose one of 'xlsx', 'csv' or 'tsv'"
        )
    ext = EXPORT_FORMATS[format]
    directory = resolve_save_dir(save_dir)
    prefix = filename or DEFAULT_FILE_PREFIX

    if split and CLUSTER_COLUMN not in topp_data.columns:
        logger.warning("No %s column to split on; writing a single file", CLUSTER_COLUMN)
        split = False

    written = []
    if split:
        for cluster, frame in topp_data.groupby(CLUSTER_COLUMN, sort=False):
            path = directory / f"{prefix}_{sanitize_filename_part(cluster)}.{ext}"
            write_table(frame, path, ext)
            logger.info("Saving file: %s", path.name)
            written.append(path)
    else:
        path = directory / f"{prefix}.{ext}"
        write_table(topp_data, path, ext)
        logger.info("Saving file: %s", path.name)
        written.append(path)
    return written
