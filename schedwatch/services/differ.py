"""
Contains the logic for reconciling a freshly scraped tree with the committed one and
reporting the differences.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from schedwatch.services.tree import File, Folder, Node


@dataclass
class ChangeReport:
    """Outcome of one reconciliation. ``added``/``removed`` hold subtree roots."""
    added: List[Node] = field(default_factory=list)
    removed: List[Node] = field(default_factory=list)
    modified: List[File] = field(default_factory=list)
    conflicts: List[Tuple[Node, Node]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    def summary(self) -> str:
        return f"+ {len(self.added)} − {len(self.removed)} ~ {len(self.modified)}"


def reconcile(new_node: Node, old_node: Node, report: Optional[ChangeReport] = None) -> ChangeReport:
    """Carries subscriber and history state from ``old_node`` onto the matching ``new_node``.

    ``new_node`` is mutated in place; ``old_node`` is left untouched apart from its ranges,
    which move to the new file.
    """
    if report is None:
        report = ChangeReport()

    new_node.subscribers = old_node.subscribers

    if isinstance(new_node, File) and isinstance(old_node, File):
        if new_node.url != old_node.url:
            report.modified.append(new_node)
        new_node.saves = old_node.saves
        ranges = list(old_node.children)
        new_node.children = []
        for range_node in ranges:
            new_node.attach(range_node)
    elif isinstance(new_node, Folder) and isinstance(old_node, Folder):
        old_children = {}
        for child in old_node.children:
            old_children.setdefault(child.id, child)
        new_ids = {child.id for child in new_node.children}

        report.removed.extend(child for child in old_node.children if child.id not in new_ids)

        for new_child in new_node.children:
            old_child = old_children.get(new_child.id)
            if old_child is not None:
                reconcile(new_child, old_child, report)
            else:
                report.added.append(new_child)
    else:
        # The variant changed under the same id: replace the node wholesale
        logging.warning(
            f"Node {new_node.id} ({new_node.display_path()!r}) changed type "
            f"from {old_node.kind} to {new_node.kind}"
        )
        report.conflicts.append((old_node, new_node))
        report.removed.append(old_node)
        report.added.append(new_node)

    return report
