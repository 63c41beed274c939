"""
Feed identifier input files.

Inputs are CSV files of ``<did>,<record path>`` rows, written daily as
``dids_and_paths_<YYYYMMDD>.csv``.
"""
import csv
import re
from pathlib import Path
from typing import Optional

import structlog

from feedposts.errors import ConfigurationError
from feedposts.models.domain import feed_uri

logger = structlog.get_logger(__name__)

INPUT_FILE_PATTERN = re.compile(r"^dids_and_paths_(?P<date>.+)\.csv$")


def latest_input_file(directory: Path) -> Optional[Path]:
    """Pick the input file with the highest date suffix in ``directory``."""
    latest: Optional[Path] = None
    latest_date = -1

    for path in Path(directory).glob("dids_and_paths_*.csv"):
        match = INPUT_FILE_PATTERN.match(path.name)
        if not match:
            continue
        try:
            file_date = int(match.group("date"))
        except ValueError:
            logger.warning("Ignoring input file with unparseable date", path=str(path))
            continue
        if file_date > latest_date:
            latest_date = file_date
            latest = path

    return latest


def read_feed_uris(path: Path) -> list[str]:
    """
    Read feed identifiers from a CSV file, keeping file order.

    Rows need at least two non-empty columns; other rows are skipped.
    Repeated identifiers are kept once.
    """
    path = Path(path)
    try:
        handle = path.open(newline="", encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot open input file {path}: {e}") from e

    uris: list[str] = []
    seen: set[str] = set()
    with handle:
        for line_no, row in enumerate(csv.reader(handle), start=1):
            if not row or not any(cell.strip() for cell in row):
                continue
            if len(row) < 2 or not row[0].strip() or not row[1].strip():
                logger.warning("Skipping malformed input row", path=str(path), line=line_no)
                continue
            uri = feed_uri(row[0].strip(), row[1].strip())
            if uri in seen:
                continue
            seen.add(uri)
            uris.append(uri)

    logger.info("Input loaded", path=str(path), feeds=len(uris))
    return uris


def resolve_input(input_file: Optional[Path], input_dir: Optional[Path]) -> Path:
    """Return the explicit input file, or the newest one in ``input_dir``."""
    if input_file is not None:
        return Path(input_file)
    if input_dir is not None:
        latest = latest_input_file(input_dir)
        if latest is None:
            raise ConfigurationError(f"no dids_and_paths file found in {input_dir}")
        return latest
    raise ConfigurationError("no input file or input directory configured")
