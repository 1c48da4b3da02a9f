"""The persisted subdirectory -> repository mapping table."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict


FIELD_SEPARATOR = "|"


def read_mapping_table(path: Path) -> Dict[str, str]:
    """
    Read a mapping table.

    Blank and malformed lines are skipped. A missing file is an empty table.
    """
    if not path.exists():
        return {}

    logger = logging.getLogger('repopush.subcontainers.state')
    table: Dict[str, str] = {}
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        subdirectory, separator, repository = line.partition(FIELD_SEPARATOR)
        if not separator or not subdirectory or not repository.strip():
            logger.warning(f"Ignoring malformed line {number} in {path.name}: {line!r}")
            continue
        table[subdirectory] = repository.strip()
    return table


def format_mapping_table(table: Dict[str, str]) -> str:
    return "".join(f"{subdirectory}{FIELD_SEPARATOR}{table[subdirectory]}\n" for subdirectory in sorted(table))


def write_mapping_table(path: Path, table: Dict[str, str]) -> None:
    """
    Replace the mapping table atomically, sorted by subdirectory.

    The new content is written to a temporary file in the same directory and
    renamed over the old table, so readers see either the old or the new one.
    """
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(format_mapping_table(table))
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise
