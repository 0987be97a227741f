"""Breadth-first search and arena → forest assembly for chapter and task trees.

Nodes only need an ``id`` and an ordered ``children`` list, so the same
helpers serve chapters and tasks.
"""

import logging
from collections import defaultdict, deque
from collections.abc import Callable, Iterable, Iterator
from typing import Protocol, TypeVar

from backend.app.models.document import Chapter, Section

logger = logging.getLogger(__name__)


class TreeNode(Protocol):
    """Anything addressable by id with ordered children."""

    id: str

    @property
    def children(self) -> list: ...


N = TypeVar("N", bound=TreeNode)


def iter_breadth_first(forest: Iterable[N]) -> Iterator[N]:
    """Yield every node level by level, siblings in stored order."""
    queue: deque[N] = deque(forest)
    while queue:
        node = queue.popleft()
        yield node
        queue.extend(node.children)


def find_by_id(forest: Iterable[N], node_id: str | None) -> N | None:
    """Return the first node with ``node_id`` in breadth-first order, or None.

    No depth limit is imposed.
    """
    if not node_id:
        return None
    for node in iter_breadth_first(forest):
        if node.id == node_id:
            return node
    return None


def find_section(chapters: Iterable[Chapter], section_id: str | None) -> Section | None:
    """Find a section anywhere in the chapter forest."""
    if not section_id:
        return None
    for chapter in iter_breadth_first(chapters):
        for section in chapter.sections:
            if section.id == section_id:
                return section
    return None


def flatten_with_parent(forest: Iterable[N]) -> list[tuple[N, N | None]]:
    """Flatten the forest into (node, parent) pairs, breadth-first."""
    pairs: list[tuple[N, N | None]] = []
    queue: deque[tuple[N, N | None]] = deque((root, None) for root in forest)
    while queue:
        node, parent = queue.popleft()
        pairs.append((node, parent))
        queue.extend((child, node) for child in node.children)
    return pairs


def build_forest(
    rows: Iterable[N],
    parent_of: Callable[[N], str | None],
    order_of: Callable[[N], int] = lambda node: getattr(node, "order_index", 0),
) -> list[N]:
    """Assemble flat rows (explicit parent ids) into an ordered forest.

    Each row is copied with its ``children`` populated; input rows are not
    mutated. Rows whose parent is missing are unreachable and dropped, which
    also keeps cyclic rows from being expanded.
    """
    rows = list(rows)
    by_id = {row.id: row for row in rows}
    children_of: dict[str | None, list[N]] = defaultdict(list)
    orphans = 0

    for row in rows:
        parent_id = parent_of(row)
        if parent_id is not None and parent_id not in by_id:
            logger.warning(f"Dropping orphan node {row.id}: parent {parent_id} not found")
            orphans += 1
            continue
        children_of[parent_id].append(row)

    for siblings in children_of.values():
        siblings.sort(key=order_of)

    # Breadth-first from the roots, then assemble bottom-up (no recursion)
    order: list[N] = []
    seen: set[str] = set()
    queue: deque[N] = deque(children_of.get(None, []))
    while queue:
        node = queue.popleft()
        if node.id in seen:
            continue
        seen.add(node.id)
        order.append(node)
        queue.extend(children_of.get(node.id, []))

    built: dict[str, N] = {}
    for node in reversed(order):
        kids = [built[child.id] for child in children_of.get(node.id, []) if child.id in built]
        built[node.id] = node.model_copy(update={"children": kids})  # type: ignore[attr-defined]

    skipped = len(rows) - len(seen) - orphans
    if skipped > 0:
        logger.warning(f"{skipped} node(s) unreachable from a root were dropped")

    return [built[root.id] for root in children_of.get(None, []) if root.id in built]


def next_order_index(siblings: Iterable[object]) -> int:
    """Append-to-end position: max sibling index + 1, or 0 for the first child."""
    indexes = [getattr(sibling, "order_index", 0) for sibling in siblings]
    return max(indexes) + 1 if indexes else 0
