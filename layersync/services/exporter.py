"""Data exporter - writes fetched listing records to JSON and Excel.

Records are wire-shape dicts (``BusResult.to_dict()`` or mapped dataLayer
items). List values are joined so every cell holds a scalar.
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Tuple

from loguru import logger
from openpyxl import Workbook

# Leading columns, in this order, when present
PREFERRED_COLUMNS = (
    "id", "operator", "busType", "departureTime", "arrivalTime", "duration",
    "priceFormatted", "price", "rating", "seatsAvailable", "route",
)


def _cell(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return "" if value is None else value


def _columns(rows: List[Mapping]) -> List[str]:
    keys = {k for row in rows for k in row.keys()}
    leading = [c for c in PREFERRED_COLUMNS if c in keys]
    return leading + sorted(keys - set(leading))


def export_to_excel(rows: Iterable[Mapping], path: Path) -> Path:
    """Export a list of record dictionaries to an Excel file.

    Args:
        rows: Records to export
        path: Output file path (.xlsx)

    Returns:
        The path to the created Excel file.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "buses"

    rows = list(rows)
    if not rows:
        wb.save(path)
        logger.info(f"Excel export is empty, created {path}")
        return path

    columns = _columns(rows)
    ws.append(columns)
    for row in rows:
        ws.append([_cell(row.get(col, "")) for col in columns])

    wb.save(path)
    logger.info(f"Excel export finished: {path}")
    return path


def export_records(rows: Iterable[Mapping], output_dir: Path, prefix: str = "buses") -> Tuple[Path, Path]:
    """Write ``<prefix>_<timestamp>.json`` and the matching ``.xlsx``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    rows = list(rows)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    json_path = output_dir / f"{prefix}_{timestamp}.json"
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(rows, f, ensure_ascii=False, indent=2)

    excel_path = export_to_excel(rows, output_dir / f"{prefix}_{timestamp}.xlsx")
    return json_path, excel_path
