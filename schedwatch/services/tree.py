"""
Data model of the tracked content hierarchy: folders, files and user-declared ranges.

Node identity is derived from the node's path (the newline-joined names from the root
down), so two scrapes of the same hierarchy produce the same ids without any shared state.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set

from openpyxl.utils.cell import coordinate_to_tuple
from openpyxl.utils.exceptions import CellCoordinatesException

from schedwatch.services.codec import register

ROOT_ID = "0"
PATH_SEPARATOR = "\n"
RANGE_PATTERN = re.compile(r"^[a-z]+[0-9]+:[a-z]+[0-9]+$", re.IGNORECASE)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return sign + "".join(reversed(digits))


def hash_path(path: str) -> str:
    """Folds the UTF-16 code units of ``path`` into a signed 32-bit int, base-36 encoded.

    Distinct paths may collide; nothing detects or resolves that.
    """
    h = 0
    data = path.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(h)


# Data models
@register
@dataclass(eq=False)
class User:
    """A notification recipient and the ids of the nodes it follows."""
    chat_id: int
    subscriptions: Set[str] = field(default_factory=set)


@dataclass(eq=False)
class Node:
    """Header shared by every node variant."""
    name: str
    id: str = ROOT_ID
    path: str = ""
    parent: Optional["Node"] = field(default=None, repr=False)
    children: List["Node"] = field(default_factory=list, repr=False)
    subscribers: Set[User] = field(default_factory=set, repr=False)

    kind = "node"

    def attach(self, child: "Node") -> "Node":
        """Appends ``child`` and recomputes the path and id of its whole subtree."""
        child.parent = self
        self.children.append(child)
        child.rebind()
        return child

    def rebind(self):
        if self.parent is None:
            self.path = ""
            self.id = ROOT_ID
        else:
            self.path = self.parent.path + PATH_SEPARATOR + self.name
            self.id = hash_path(self.path)
        for child in self.children:
            child.rebind()

    def walk(self) -> Iterator["Node"]:
        """Pre-order traversal of this node's subtree."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def has_subscriber(self, user: User) -> bool:
        return any(user in node.subscribers for node in self.walk())

    def get_subscribers(self) -> Set[User]:
        """Everyone following this node, any of its ancestors or any of its descendants."""
        result: Set[User] = set()
        ancestor = self.parent
        while ancestor is not None:
            result.update(ancestor.subscribers)
            ancestor = ancestor.parent
        for node in self.walk():
            result.update(node.subscribers)
        return result

    def display_path(self) -> str:
        return self.path.strip(PATH_SEPARATOR)


@register
@dataclass(eq=False)
class Folder(Node):
    kind = "folder"


@register
@dataclass(eq=False)
class File(Node):
    """A downloadable file; ``saves`` lists its retrieved snapshots, oldest first."""
    url: str = ""
    saves: List[str] = field(default_factory=list)

    kind = "file"

    def supports_ranges(self) -> bool:
        return bool(self.saves) and self.saves[-1].endswith(".xlsx")


@register
@dataclass(eq=False)
class Range(Node):
    """A rectangular cell range inside a spreadsheet file, 1-based and inclusive."""
    min_col: int = 1
    min_row: int = 1
    max_col: int = 1
    max_row: int = 1
    alias: str = ""

    kind = "range"

    @classmethod
    def from_address(cls, address: str, alias: Optional[str] = None) -> "Range":
        address = address.strip().upper()
        if not RANGE_PATTERN.match(address):
            raise ValueError(f"Unrecognized range address: {address!r}")
        start, end = address.split(":")
        try:
            first_row, first_col = coordinate_to_tuple(start)
            last_row, last_col = coordinate_to_tuple(end)
        except CellCoordinatesException as e:
            raise ValueError(f"Unrecognized range address: {address!r}") from e
        return cls(
            name=address,
            min_col=min(first_col, last_col),
            min_row=min(first_row, last_row),
            max_col=max(first_col, last_col),
            max_row=max(first_row, last_row),
            alias=alias or address,
        )

    @property
    def bounds(self):
        return self.min_col, self.min_row, self.max_col, self.max_row


def build_index(root: Node) -> Dict[str, Node]:
    """Maps every node id to its node; on id collisions the first node in pre-order wins."""
    index: Dict[str, Node] = {}
    for node in root.walk():
        index.setdefault(node.id, node)
    return index
