"""
Rendering of tree nodes for the command surface: browse menus and JSON dumps.
"""
from typing import Any, Dict, List

from schedwatch.services.tree import File, Folder, Node, Range, User

FOLDER_MARK = "🔵 "
RANGE_MARK = "🟢 "


def get_entry_label(node: Node, checked: bool) -> str:
    """Label of a menu entry; followed entries get a colored mark."""
    if isinstance(node, Range):
        return (RANGE_MARK if checked else "") + node.alias
    return (FOLDER_MARK if checked else "") + node.name


def menu_target(node: Node) -> Node:
    """The node whose menu to show after ``node`` was picked.

    Leaves (ranges and files without range support) show their parent's menu.
    """
    if isinstance(node, Range) or (isinstance(node, File) and not node.supports_ranges()):
        return node.parent if node.parent is not None else node
    return node


def build_menu(node: Node, user: User) -> Dict[str, Any]:
    """
    Build the browse menu of a folder or range-capable file for ``user``.

    Args:
        node: Folder or file whose entries are listed
        user: User the marks are computed for

    Returns:
        Dict with the node header, its entries, a "whole node" entry and a back link
    """
    entries: List[Dict[str, Any]] = []
    for child in node.children:
        if isinstance(child, Range):
            checked = user in child.subscribers
        else:
            checked = child.has_subscriber(user)
        entries.append({
            "id": child.id,
            "kind": child.kind,
            "label": get_entry_label(child, checked),
            "checked": checked,
        })

    whole_checked = user in node.subscribers
    whole_label = "Whole folder" if isinstance(node, Folder) else "Whole file"
    return {
        "id": node.id,
        "kind": node.kind,
        "name": node.name,
        "path": node.display_path(),
        "entries": entries,
        "whole": {
            "id": node.id,
            "label": (FOLDER_MARK if whole_checked else "") + whole_label,
            "checked": whole_checked,
        },
        "back": node.parent.id if node.parent is not None else None,
        "can_add_range": isinstance(node, File),
    }


def node_to_dict(node: Node) -> Dict[str, Any]:
    """Convert a node subtree to a dictionary for JSON serialization."""
    result: Dict[str, Any] = {
        "id": node.id,
        "kind": node.kind,
        "name": node.name,
        "path": node.display_path(),
        "subscribers": sorted(user.chat_id for user in node.subscribers),
        "children": [node_to_dict(child) for child in node.children],
    }
    if isinstance(node, File):
        result["url"] = node.url
        result["saves"] = list(node.saves)
    elif isinstance(node, Range):
        result["alias"] = node.alias
        result["bounds"] = list(node.bounds)
    return result
