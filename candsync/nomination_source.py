"""
Nomination sources. The engine only sees `current_nominations()`; how the host
application's table is captured stays behind this interface.
"""
from pathlib import Path
from typing import Any, List, Optional, Protocol, Union

import numpy as np
import pandas as pd
from loguru import logger

from candsync.models import Nomination


class NominationSource(Protocol):
    def current_nominations(self) -> List[Nomination]: ...


class StaticNominationSource:
    """Fixed list of nominations (embedding, tests)."""

    def __init__(self, nominations: List[Nomination]):
        self.nominations = list(nominations)

    def current_nominations(self) -> List[Nomination]:
        return list(self.nominations)


def _parse_timestamp_ms(value) -> Optional[int]:
    """Parse epoch milliseconds from the various shapes an export produces."""
    if value is None:
        return None
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return None
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        return int(s) if s.isdigit() else None
    return None


def _parse_images(value) -> List[dict]:
    if isinstance(value, list):
        return [img if isinstance(img, dict) else {"url": str(img)} for img in value]
    if isinstance(value, str) and value.strip():
        return [{"url": value.strip()}]
    return []


def load_nominations_from_file(file_path: Union[str, Path], nrows: int = None) -> List[Nomination]:
    """
    Load nominations from a JSON (array of records) or CSV export of the host table.

    Args:
        file_path: Export location; `.csv` is read as CSV, anything else as JSON.
        nrows: Optional row limit.

    Returns:
        List[Nomination]: Nominations in file order. Rows without an id or with
                          non-numeric coordinates are skipped.
    """
    path = Path(file_path)
    if not path.exists():
        logger.debug(f"Nomination export {path} not found")
        return []

    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, nrows=nrows, dtype={"id": str})
    else:
        df = pd.read_json(path, orient="records", dtype={"id": str}, convert_dates=False)
        if nrows is not None:
            df = df.head(nrows)

    records = []
    for _, row in df.iterrows():
        # Helper to safely extract values from pandas Series, converting NaN to None
        def safe_get(col) -> Any:
            if col not in row.index:
                return None
            val = row[col]
            if isinstance(val, (list, dict)):
                return val
            if pd.isna(val):
                return None
            return val

        nid = safe_get("id")
        if nid is None:
            continue

        try:
            lat = float(safe_get("lat"))
            lng = float(safe_get("lng"))
        except (TypeError, ValueError):
            logger.debug(f"Skipping nomination {nid}: bad coordinates")
            continue

        images = _parse_images(safe_get("images"))
        if not images:
            images = _parse_images(safe_get("imageUrl"))

        records.append(
            Nomination(
                id=str(nid),
                title=str(safe_get("title") or ""),
                description=str(safe_get("description") or ""),
                lat=lat,
                lng=lng,
                state=str(safe_get("state") or ""),
                images=images,
                discovered_timestamp_ms=_parse_timestamp_ms(safe_get("discoveredTimestampMs")),
            )
        )
    return records


class FileNominationSource:
    """Reads the nominations export on every call, so it always reflects the latest capture."""

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)

    def current_nominations(self) -> List[Nomination]:
        return load_nominations_from_file(self.file_path)
