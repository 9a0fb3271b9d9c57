"""
In-memory module tree.

Nodes live in a flat list (the arena); parent links are ids resolved through
an index, so walking the tree never touches the database.
"""
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from app.features.modules.models import Module, ModuleType


@dataclass
class ModuleNode:
    """A module plus its ordered children and the viewer's read permission."""
    id: str
    name: str
    slug: str
    type: ModuleType
    parent_id: Optional[str]
    order: int
    icon: Optional[str] = None
    is_active: bool = True
    can_read: bool = True
    children: list["ModuleNode"] = field(default_factory=list)

    @classmethod
    def from_module(cls, module: Module) -> "ModuleNode":
        return cls(
            id=module.id,
            name=module.name,
            slug=module.slug,
            type=module.type,
            parent_id=module.parent_id,
            order=module.order,
            icon=module.icon,
            is_active=module.is_active,
        )

    @property
    def is_folder(self) -> bool:
        return self.type == ModuleType.FOLDER

    @property
    def descendant_count(self) -> int:
        return sum(1 for _ in self.walk()) - 1

    def walk(self) -> Iterator["ModuleNode"]:
        """Depth-first pre-order over this node and its subtree."""
        yield self
        for child in self.children:
            yield from child.walk()


def _sort_key(node: ModuleNode) -> tuple[int, str]:
    # ULID ids sort by creation time, which breaks ties on equal order
    return node.order, node.id


class ModuleTree:
    """
    Arena of module nodes with a parent → children index.

    Build it once per request from the module rows and query it as often as
    needed.
    """

    def __init__(self, modules: Iterable[Module | ModuleNode]):
        self._nodes: list[ModuleNode] = []
        self._index: dict[str, int] = {}
        self._children: dict[Optional[str], list[str]] = {}

        for module in modules:
            node = module if isinstance(module, ModuleNode) else ModuleNode.from_module(module)
            self._index[node.id] = len(self._nodes)
            self._nodes.append(node)

        for node in sorted(self._nodes, key=_sort_key):
            self._children.setdefault(node.parent_id, []).append(node.id)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._index

    def __iter__(self) -> Iterator[ModuleNode]:
        return iter(self._nodes)

    def get(self, module_id: str) -> Optional[ModuleNode]:
        position = self._index.get(module_id)
        return None if position is None else self._nodes[position]

    def children(self, module_id: Optional[str]) -> list[ModuleNode]:
        """Direct children in sibling order. None gives the roots."""
        return [self._nodes[self._index[child_id]] for child_id in self._children.get(module_id, [])]

    def descendants(self, module_id: str) -> list[ModuleNode]:
        """All nodes below module_id, depth-first pre-order."""
        found: list[ModuleNode] = []
        stack = list(reversed(self.children(module_id)))
        seen = {module_id}
        while stack:
            node = stack.pop()
            if node.id in seen:
                # Stored data already contains a cycle; stop rather than loop
                continue
            seen.add(node.id)
            found.append(node)
            stack.extend(reversed(self.children(node.id)))
        return found

    def ancestors(self, module_id: str) -> list[ModuleNode]:
        """Parent, grandparent, ... up to the root."""
        found: list[ModuleNode] = []
        seen = {module_id}
        node = self.get(module_id)
        while node is not None and node.parent_id is not None:
            if node.parent_id in seen:
                break
            seen.add(node.parent_id)
            node = self.get(node.parent_id)
            if node is not None:
                found.append(node)
        return found

    def would_create_cycle(self, module_id: str, new_parent_id: Optional[str]) -> bool:
        """
        True when making new_parent_id the parent of module_id closes a loop.

        Walks up from the proposed parent; reaching module_id means the new
        parent sits inside module_id's own subtree.
        """
        if new_parent_id is None:
            return False
        if new_parent_id == module_id:
            return True
        return any(node.id == module_id for node in self.ancestors(new_parent_id))

    def forest(
        self,
        include: Optional[Iterable[str]] = None,
        readable: Optional[set[str]] = None,
    ) -> list[ModuleNode]:
        """
        Build an ordered forest of fresh nodes.

        Args:
            include: ids to keep (all nodes when None)
            readable: ids whose can_read is True (all kept nodes when None)

        A kept node whose parent is not kept becomes a root. Siblings are
        sorted ascending by order.
        """
        keep = set(self._index) if include is None else {i for i in include if i in self._index}
        copies: dict[str, ModuleNode] = {}
        for module_id in keep:
            source = self.get(module_id)
            copies[module_id] = ModuleNode(
                id=source.id,
                name=source.name,
                slug=source.slug,
                type=source.type,
                parent_id=source.parent_id,
                order=source.order,
                icon=source.icon,
                is_active=source.is_active,
                can_read=True if readable is None else module_id in readable,
            )

        roots: list[ModuleNode] = []
        for node in copies.values():
            parent = copies.get(node.parent_id) if node.parent_id is not None else None
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)

        for node in copies.values():
            node.children.sort(key=_sort_key)
        roots.sort(key=_sort_key)
        return roots
