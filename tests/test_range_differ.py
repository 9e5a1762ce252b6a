"""Tests for range-level comparison of spreadsheet snapshots."""

from openpyxl import Workbook

from schedwatch.services.range_differ import compare_snapshots, compare_workbooks, snapshot_paths
from schedwatch.services.tree import File, Range

from tests.helpers import find, make_tree


def _workbook(cells, title="Week 1"):
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    for coordinate, value in cells.items():
        sheet[coordinate] = value
    return workbook


def test_change_inside_range_is_reported():
    first = _workbook({"A1": "Math", "B2": "Room 1"})
    second = _workbook({"A1": "Math", "B2": "Room 2"})
    range_node = Range.from_address("A1:B2")

    updates = compare_workbooks(first, second, [range_node])

    assert updates[range_node].modified == ["Week 1"]
    assert updates[range_node].added == []


def test_change_outside_range_is_ignored():
    first = _workbook({"A1": "Math", "D4": "Room 1"})
    second = _workbook({"A1": "Math", "D4": "Room 2"})
    assert compare_workbooks(first, second, [Range.from_address("A1:B2")]) == {}


def test_range_beyond_used_area_never_differs():
    first = _workbook({"A1": "Math"})
    second = _workbook({"A1": "Physics"})
    assert compare_workbooks(first, second, [Range.from_address("K10:M20")]) == {}


def test_new_sheet_is_reported_as_added_for_every_range():
    first = _workbook({"A1": "Math"})
    second = _workbook({"A1": "Math"})
    second.create_sheet("Week 2")
    ranges = [Range.from_address("A1:A1"), Range.from_address("Z1:Z9")]

    updates = compare_workbooks(first, second, ranges)

    for range_node in ranges:
        assert updates[range_node].added == ["Week 2"]
        assert updates[range_node].modified == []


def test_compare_snapshots_reads_files(tmp_path):
    first_path, second_path = tmp_path / "1.xlsx", tmp_path / "2.xlsx"
    _workbook({"C3": 1}).save(first_path)
    _workbook({"C3": 2}).save(second_path)
    range_node = Range.from_address("B2:D4")

    updates = compare_snapshots(str(first_path), str(second_path), [range_node])

    assert updates[range_node].modified == ["Week 1"]


def test_snapshot_paths_needs_two_spreadsheets(store):
    root = make_tree({"F1": "L1"})
    file = find(root, "F1")
    assert snapshot_paths(file, store) is None

    file.saves = ["1.pdf", "2.xlsx"]
    assert snapshot_paths(file, store) is None

    file.saves = ["0.xlsx", "1.xlsx", "2.xlsx"]
    assert snapshot_paths(file, store) == (store.resolve(file, "1.xlsx"), store.resolve(file, "2.xlsx"))


def test_snapshot_paths_of_detached_file(store):
    file = File(name="F1", url="L1", saves=["1.xlsx", "2.xlsx"])
    first, second = snapshot_paths(file, store)
    assert first.endswith("1.xlsx") and second.endswith("2.xlsx")
