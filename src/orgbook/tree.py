"""Org chart tree building and filtering.

Entity records arrive from the backend as a flat list where every record
points at its parent by id. This module turns such a list into a forest of
nodes for display and prunes that forest down to search matches.

- Groups are aggregators: they never appear in the forest, they only label
  the records that point at them.
- Companies and divisions form the actual hierarchy.
- Construction is a single pass over lookup maps, so cyclic parent
  references cannot recurse; records caught in a cycle are simply not
  reachable from any root.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, Optional, Union

from orgbook.models import EntityKind, EntityRecord, EntityRole, Industry


logger = logging.getLogger(__name__)

TreeRecord = Union[EntityRecord, Industry]


@dataclass
class EntityNode:
    """A record placed in the forest, with its ordered children."""

    record: TreeRecord
    children: list["EntityNode"] = field(default_factory=list)
    aggregator_name: Optional[str] = None  # Name of the group this record belongs to

    @property
    def key(self) -> str:
        """Stable identity used for expansion state and lookups."""
        return str(self.record.id)

    @property
    def display_name(self) -> str:
        return self.record.display_name

    @property
    def kind(self) -> Optional[EntityKind]:
        return getattr(self.record, "kind", None)

    def matches(self, needle: str) -> bool:
        """Check the searchable fields for a lowercase substring."""
        fields = self.record.searchable_fields() + (self.aggregator_name,)
        return any(value and needle in value.lower() for value in fields)


def build_entity_forest(records: Iterable[EntityRecord]) -> list[EntityNode]:
    """Build the org chart forest from a flat list of entity records.

    Args:
        records: Records in backend order. Order is preserved among siblings.

    Returns:
        Root nodes. Records whose parent is missing or is a group become
        roots; groups themselves are left out.
    """
    aggregators: dict[str, EntityRecord] = {}
    members: dict[str, EntityRecord] = {}

    for record in records:
        role = record.kind.role
        if role is EntityRole.AGGREGATOR:
            aggregators[record.id] = record
        elif role is EntityRole.HIERARCHY:
            members[record.id] = record
        else:
            raise AssertionError(f"Unhandled entity role: {role}")

    nodes = {record_id: EntityNode(record) for record_id, record in members.items()}
    roots: list[EntityNode] = []

    for record in members.values():
        node = nodes[record.id]
        parent_id = record.parent_id

        if parent_id is not None and parent_id in aggregators:
            node.aggregator_name = aggregators[parent_id].display_name

        if parent_id is not None and parent_id in nodes:
            nodes[parent_id].children.append(node)
        else:
            roots.append(node)

    _log_unreachable(roots, len(nodes), "entity")
    return roots


def build_industry_forest(industries: Iterable[Industry]) -> list[EntityNode]:
    """Build the industry tree.

    Top-level industries have no parent. An industry whose parent is not in
    the list is dropped along with its subtree.
    """
    by_id = {industry.id: industry for industry in industries}
    nodes = {industry_id: EntityNode(industry) for industry_id, industry in by_id.items()}
    roots: list[EntityNode] = []

    for industry in by_id.values():
        node = nodes[industry.id]
        if industry.parent_id is None:
            roots.append(node)
        elif industry.parent_id in nodes:
            nodes[industry.parent_id].children.append(node)

    _log_unreachable(roots, len(nodes), "industry")
    return roots


def filter_forest(forest: list[EntityNode], term: str) -> list[EntityNode]:
    """Prune a forest to the nodes matching a search term.

    A node survives if it matches or any descendant does; surviving nodes are
    copies whose children are the surviving children. The input forest is
    never modified.

    Args:
        forest: Root nodes from one of the builders.
        term: Case-insensitive substring. Empty returns the forest as is.

    Returns:
        The pruned forest, possibly empty.
    """
    if not term:
        return forest

    needle = term.lower()
    kept = (_filter_node(node, needle) for node in forest)
    return [node for node in kept if node is not None]


def _filter_node(node: EntityNode, needle: str) -> Optional[EntityNode]:
    children = [child for child in (_filter_node(c, needle) for c in node.children) if child is not None]
    if node.matches(needle) or children:
        return replace(node, children=children)
    return None


def iter_nodes(forest: Iterable[EntityNode]) -> Iterator[tuple[int, EntityNode]]:
    """Yield (depth, node) pairs in document order."""
    stack = [(0, node) for node in reversed(list(forest))]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        stack.extend((depth + 1, child) for child in reversed(node.children))


def find_node(forest: Iterable[EntityNode], key: str) -> Optional[EntityNode]:
    """Find a node by record id anywhere in the forest."""
    for _, node in iter_nodes(forest):
        if node.key == key:
            return node
    return None


def category_for_level(level: int) -> str:
    """Label an industry by depth: Main Industry, sub, sub-sub, ..."""
    if level <= 0:
        return "Main Industry"
    return "-".join(["sub"] * level)


def _log_unreachable(roots: list[EntityNode], total: int, label: str) -> None:
    reachable = sum(1 for _ in iter_nodes(roots))
    if reachable < total:
        logger.debug(
            "%d of %d %s records are unreachable from any root (cyclic or orphaned parents)",
            total - reachable,
            total,
            label,
        )
