"""
Compares the two latest spreadsheet snapshots of a file inside its declared ranges.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from openpyxl import load_workbook
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from schedwatch.services.tree import File, Range

SPREADSHEET_SUFFIX = ".xlsx"

Bounds = Tuple[int, int, int, int]  # min_col, min_row, max_col, max_row


@dataclass
class RangeUpdate:
    """Sheet names on which a range changed, or to which it was newly added."""
    modified: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)


def used_bounds(sheet: Worksheet) -> Bounds:
    return sheet.min_column, sheet.min_row, sheet.max_column, sheet.max_row


def _union(first: Bounds, second: Bounds) -> Bounds:
    return (
        min(first[0], second[0]),
        min(first[1], second[1]),
        max(first[2], second[2]),
        max(first[3], second[3]),
    )


def _clip(bounds: Bounds, limits: Bounds) -> Bounds:
    return (
        max(bounds[0], limits[0]),
        max(bounds[1], limits[1]),
        min(bounds[2], limits[2]),
        min(bounds[3], limits[3]),
    )


def _differs(first: Worksheet, second: Worksheet, bounds: Bounds) -> bool:
    """Scans ``bounds`` row by row and stops at the first differing cell."""
    min_col, min_row, max_col, max_row = bounds
    if min_col > max_col or min_row > max_row:
        return False
    for row in range(min_row, max_row + 1):
        for col in range(min_col, max_col + 1):
            if first.cell(row=row, column=col).value != second.cell(row=row, column=col).value:
                return True
    return False


def compare_workbooks(first: Workbook, second: Workbook, ranges: Iterable[Range]) -> Dict[Range, RangeUpdate]:
    """Reports, per range, the sheets of ``second`` where it changed or first appeared."""
    ranges = list(ranges)
    updates: Dict[Range, RangeUpdate] = {}

    for sheet in second.worksheets:
        name = sheet.title
        if name not in first.sheetnames:
            for range_node in ranges:
                updates.setdefault(range_node, RangeUpdate()).added.append(name)
            continue

        previous = first[name]
        # Reading cells may grow a sheet's used area, so take the extent once per sheet
        limits = _union(used_bounds(previous), used_bounds(sheet))
        for range_node in ranges:
            if _differs(previous, sheet, _clip(range_node.bounds, limits)):
                updates.setdefault(range_node, RangeUpdate()).modified.append(name)

    return updates


def compare_snapshots(first_path: str, second_path: str, ranges: Iterable[Range]) -> Dict[Range, RangeUpdate]:
    first = load_workbook(first_path, data_only=True)
    second = load_workbook(second_path, data_only=True)
    try:
        return compare_workbooks(first, second, ranges)
    finally:
        first.close()
        second.close()


def snapshot_paths(file: File, store) -> Optional[Tuple[str, str]]:
    """Paths of the two latest snapshots, or None if they cannot be compared."""
    if len(file.saves) < 2:
        return None
    first, second = file.saves[-2:]
    if not (first.endswith(SPREADSHEET_SUFFIX) and second.endswith(SPREADSHEET_SUFFIX)):
        logging.debug(f"Snapshots of {file.id} are not spreadsheets, skipping range comparison")
        return None
    return store.resolve(file, first), store.resolve(file, second)
