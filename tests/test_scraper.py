"""Tests for parsing the schedule page into a content tree."""

import pytest

from schedwatch.services.scraper import FetchError, Scraper
from schedwatch.services.tree import ROOT_ID, File

from tests.helpers import find

PAGE = """
<html><body>
<div class="schedule-table">
  <h2>Schedule</h2>
  <div>
    <section>
      <h3>Institute of IT</h3>
      <div>
        <section>
          <h4>Full-time</h4>
          <div>
            <section>
              <h5>Year 1</h5>
              <div>
                <p><span>Group IT-101</span><a href="/files/it101.xlsx">Week 1</a><a href=" /files/it101-2.xlsx ">Week 2</a></p>
                <p><span>Group IT-102</span></p>
              </div>
            </section>
          </div>
        </section>
      </div>
    </section>
  </div>
</div>
</body></html>
"""


def test_parse_tree_builds_nested_folders():
    root = Scraper(url="http://example.test").parse_tree(PAGE)

    assert root.id == ROOT_ID
    assert root.name == "Schedule"
    group = find(root, "Institute of IT", "Full-time", "Year 1", "Group IT-101")
    assert [child.name for child in group.children] == ["Week 1", "Week 2"]
    assert all(isinstance(child, File) for child in group.children)
    assert group.children[1].url == "/files/it101-2.xlsx"
    assert group.children[0].path == "\nInstitute of IT\nFull-time\nYear 1\nGroup IT-101\nWeek 1"
    assert find(root, "Institute of IT", "Full-time", "Year 1", "Group IT-102").children == []


def test_parse_tree_is_deterministic():
    scraper = Scraper(url="http://example.test")
    first = [node.id for node in scraper.parse_tree(PAGE).walk()]
    second = [node.id for node in scraper.parse_tree(PAGE).walk()]
    assert first == second


def test_parse_tree_without_table_fails():
    with pytest.raises(FetchError):
        Scraper(url="http://example.test").parse_tree("<html><body><p>Maintenance</p></body></html>")
