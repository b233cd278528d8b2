"""
modules/bom/graph.py

The bill of materials as a directed acyclic graph keyed by item id.
An edge parent -> component exists for every ingredient line (water excluded)
and every packaging line.
"""

from __future__ import annotations

from collections import defaultdict
from graphlib import CycleError, TopologicalSorter
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ...database.errors import ValidationError
from ...database.repositories.bom_repo import BomRepo


class BomGraph:
    def __init__(self, edges: Iterable[Tuple[int, int]] = ()):
        self._children: Dict[int, Set[int]] = defaultdict(set)
        self._parents: Dict[int, Set[int]] = defaultdict(set)
        for parent, child in edges:
            self.add_edge(parent, child)

    @classmethod
    def load(cls, bom: BomRepo) -> "BomGraph":
        return cls(bom.edges())

    # ---- structure ----

    def children(self, item_id: int) -> Set[int]:
        return set(self._children.get(item_id, ()))

    def parents(self, item_id: int) -> Set[int]:
        return set(self._parents.get(item_id, ()))

    def reaches(self, start: int, target: int) -> bool:
        """True if `target` is `start` or one of its (transitive) components."""
        stack = [start]
        seen: Set[int] = set()
        while stack:
            node = stack.pop()
            if node == target:
                return True
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._children.get(node, ()))
        return False

    def add_edge(self, parent: int, child: int) -> None:
        if parent == child:
            raise ValidationError(f"Item {parent} cannot be a component of itself.")
        if self.reaches(child, parent):
            raise ValidationError(
                f"Adding item {child} to item {parent} would create a cycle in the bill of materials."
            )
        self._children[parent].add(child)
        self._parents[child].add(parent)

    def remove_edge(self, parent: int, child: int) -> None:
        self._children.get(parent, set()).discard(child)
        self._parents.get(child, set()).discard(parent)

    def replace_children(self, parent: int, children: Iterable[int]) -> None:
        """Swap a parent's whole component set, rejecting any edge that closes a cycle."""
        previous = self.children(parent)
        for child in previous:
            self.remove_edge(parent, child)
        added: List[int] = []
        try:
            for child in children:
                if child in self._children.get(parent, ()):
                    continue
                self.add_edge(parent, child)
                added.append(child)
        except ValidationError:
            for child in added:
                self.remove_edge(parent, child)
            for child in previous:
                self._children[parent].add(child)
                self._parents[child].add(parent)
            raise

    # ---- traversal ----

    def dependents(self, item_id: int) -> Set[int]:
        """Every item that uses `item_id`, directly or through intermediates."""
        out: Set[int] = set()
        stack = list(self._parents.get(item_id, ()))
        while stack:
            node = stack.pop()
            if node in out:
                continue
            out.add(node)
            stack.extend(self._parents.get(node, ()))
        return out

    def topological_order(self, nodes: Optional[Iterable[int]] = None) -> List[int]:
        """
        Components before the composites that use them.

        With `nodes`, only those items are returned (ordering still respects the
        edges between them).
        """
        if nodes is None:
            subset = set(self._children) | set(self._parents)
        else:
            subset = set(nodes)
        sorter: TopologicalSorter = TopologicalSorter()
        for node in sorted(subset):
            sorter.add(node, *sorted(c for c in self._children.get(node, ()) if c in subset))
        try:
            return list(sorter.static_order())
        except CycleError as e:
            raise ValidationError(f"Bill of materials contains a cycle: {e.args[1]}") from e
