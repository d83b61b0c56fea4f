"""Text rendering of org chart forests and identity-keyed expansion state."""

from typing import Collection, Iterable, Iterator, Optional

from orgbook.models import EntityKind
from orgbook.tree import EntityNode, iter_nodes


KIND_ICONS = {
    EntityKind.GROUP: "🏭",
    EntityKind.COMPANY: "🏢",
    EntityKind.DIVISION: "🏪",
}
INDUSTRY_ICON = "🏷️"


class ExpansionState:
    """Set of expanded node ids.

    Keyed by record id rather than by node object, so it stays valid when
    the forest is rebuilt from a fresh fetch.
    """

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: set[str] = {str(key) for key in keys}

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))

    def keys(self) -> set[str]:
        return set(self._keys)

    def expand(self, key: str) -> None:
        self._keys.add(key)

    def collapse(self, key: str) -> None:
        self._keys.discard(key)

    def toggle(self, key: str) -> bool:
        """Flip a node and return whether it is now expanded."""
        if key in self._keys:
            self._keys.discard(key)
            return False
        self._keys.add(key)
        return True

    def expand_all(self, forest: Iterable[EntityNode]) -> None:
        """Expand every node that has children."""
        self._keys.update(node.key for _, node in iter_nodes(forest) if node.children)

    def collapse_all(self) -> None:
        self._keys.clear()

    def prune(self, forest: Iterable[EntityNode]) -> None:
        """Forget ids that are no longer in the forest."""
        present = {node.key for _, node in iter_nodes(forest)}
        self._keys &= present


def iter_visible(
    forest: Iterable[EntityNode],
    expanded: Optional[Collection[str]] = None,
) -> Iterator[tuple[int, EntityNode]]:
    """Yield (depth, node) for the rows a viewer would see.

    With ``expanded`` set, children of nodes not in it are hidden; without
    it everything is shown.
    """
    stack = [(0, node) for node in reversed(list(forest))]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        if expanded is None or node.key in expanded:
            stack.extend((depth + 1, child) for child in reversed(node.children))


def node_label(node: EntityNode) -> str:
    """One-line label: icon, name, and the group it belongs to."""
    icon = KIND_ICONS.get(node.kind, INDUSTRY_ICON)
    label = f"{icon} {node.display_name}"
    if node.kind is not None:
        label += f" [{node.kind.value}]"
    if node.aggregator_name:
        label += f" (Group: {node.aggregator_name})"
    return label


def render_forest(
    forest: list[EntityNode],
    expanded: Optional[Collection[str]] = None,
) -> list[str]:
    """Render a forest as box-drawing lines for the terminal.

    Collapsed nodes show how many children they hide.
    """
    lines: list[str] = []

    def render(nodes: list[EntityNode], prefix: str) -> None:
        for index, node in enumerate(nodes):
            last = index == len(nodes) - 1
            connector = "└─ " if last else "├─ "
            is_open = expanded is None or node.key in expanded
            label = node_label(node)
            if node.children and not is_open:
                label += f" (+{len(node.children)})"
            lines.append(f"{prefix}{connector}{label}")
            if node.children and is_open:
                render(node.children, prefix + ("   " if last else "│  "))

    render(forest, "")
    return lines
