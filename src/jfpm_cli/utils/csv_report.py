"""Timestamped CSV reports written to the working directory."""

import csv
import os
from dataclasses import asdict, fields, is_dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence


def create_csv_file(
    prefix: str,
    rows: Sequence[Any],
    timestamp: Optional[datetime] = None,
    directory: Optional[str] = None,
) -> str:
    """Write dataclass rows to ``<prefix>-<timestamp>.csv``.

    Column names are the dataclass field names, in declaration order.

    Args:
        prefix: File name prefix, e.g. "transfer-config-conflicts".
        rows: Dataclass instances of a single type.
        timestamp: Time used in the file name; defaults to now.
        directory: Target directory; defaults to the current working directory.

    Returns:
        Absolute path of the written file.
    """
    timestamp = timestamp or datetime.now()
    directory = directory or os.getcwd()
    path = os.path.join(directory, f"{prefix}-{timestamp.strftime('%Y-%m-%d-%H-%M-%S')}.csv")

    header: List[str] = []
    if rows and is_dataclass(rows[0]):
        header = [f.name for f in fields(rows[0])]

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=header)
        writer.writeheader()
        for row in rows:
            writer.writerow(asdict(row))
    return os.path.abspath(path)
