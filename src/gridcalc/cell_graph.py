"""Dependency graph between formula cells.

Edges point from a source cell to the cells whose formulas read it
(``listeners``).  A forward index per dependent lets a formula rewrite
drop exactly the edges of the previous formula before the new ones are
added, so the graph always reflects the latest formula text of each
computed cell.

Cycles are allowed in the graph itself; :meth:`DependencyGraph.cascade_order`
reports the cells that cannot be ordered so the recalculation layer can
flag them instead of recursing forever.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable

from gridcalc.addressing import parse_key, position_to_ref
from gridcalc.formulas.errors import FormulaError


class CellCycleError(FormulaError):
    """Circular reference between formula cells.

    Attributes:
        cycle_path: Cell labels along the cycle, first label repeated at the end.
    """

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__(f"Circular cell reference: {' -> '.join(cycle_path)}")


def key_label(key: str) -> str:
    """``"0-1"`` -> ``"B1"``."""
    row, col = parse_key(key)
    return position_to_ref(row, col)


class DependencyGraph:
    """Reverse dependency edges with insertion-ordered listener sets.

    Usage::

        graph = DependencyGraph()
        graph.set_dependencies("0-1", ["0-0"])   # B1 reads A1
        graph.listeners("0-0")                   # ["0-1"]
        order, blocked = graph.cascade_order("0-0")
    """

    def __init__(self) -> None:
        # source key -> listener keys (dict used as an ordered set)
        self._listeners: dict[str, dict[str, None]] = {}
        # dependent key -> source keys of its current formula
        self._sources: dict[str, list[str]] = {}

    # ------------------------------------------------------------------
    # Edge maintenance
    # ------------------------------------------------------------------

    def set_dependencies(self, key: str, deps: Iterable[str]) -> None:
        """Replace the dependency set of *key* with *deps*."""
        self.clear_dependencies(key)
        sources: list[str] = []
        for dep in deps:
            if dep in sources:
                continue
            sources.append(dep)
            self._listeners.setdefault(dep, {})[key] = None
        if sources:
            self._sources[key] = sources

    def clear_dependencies(self, key: str) -> None:
        """Remove every edge sourced from the previous formula of *key*."""
        for dep in self._sources.pop(key, []):
            listeners = self._listeners.get(dep)
            if listeners is None:
                continue
            listeners.pop(key, None)
            if not listeners:
                del self._listeners[dep]

    def listeners(self, key: str) -> list[str]:
        """Cells whose formulas read *key*, in insertion order."""
        return list(self._listeners.get(key, ()))

    def dependencies(self, key: str) -> list[str]:
        """Cells the formula of *key* reads."""
        return list(self._sources.get(key, ()))

    def edge_count(self) -> int:
        return sum(len(v) for v in self._listeners.values())

    def __contains__(self, key: object) -> bool:
        return key in self._sources or key in self._listeners

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def reachable(self, root: str) -> list[str]:
        """*root* plus every transitive listener, in breadth-first order."""
        seen: dict[str, None] = {root: None}
        queue = deque([root])
        while queue:
            node = queue.popleft()
            for nxt in self._listeners.get(node, ()):
                if nxt not in seen:
                    seen[nxt] = None
                    queue.append(nxt)
        return list(seen)

    def cascade_order(self, root: str) -> tuple[list[str], list[str]]:
        """Order the cascade triggered by a change to *root*.

        Returns:
            ``(order, blocked)``.  ``order`` is a topological order of
            *root* and its transitive listeners (ties broken by discovery
            order), so each cell comes after every cell it reads.
            ``blocked`` lists the cells that sit on a cycle or downstream
            of one and therefore cannot be ordered.
        """
        nodes = self.reachable(root)
        members = set(nodes)
        indegree = dict.fromkeys(nodes, 0)
        for node in nodes:
            for nxt in self._listeners.get(node, ()):
                indegree[nxt] += 1

        queue = deque(n for n in nodes if indegree[n] == 0)
        order: list[str] = []
        while queue:
            node = queue.popleft()
            order.append(node)
            for nxt in self._listeners.get(node, ()):
                if nxt not in members:
                    continue
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    queue.append(nxt)

        placed = set(order)
        blocked = [n for n in nodes if n not in placed]
        return order, blocked

    def find_cycle(self, key: str) -> list[str] | None:
        """Return a cycle through *key* as a key path (``[key, ..., key]``), or None."""
        path = [key]
        seen = {key}
        stack = [iter(self.listeners(key))]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                path.pop()
                continue
            if nxt == key:
                return path + [key]
            if nxt in seen:
                continue
            seen.add(nxt)
            path.append(nxt)
            stack.append(iter(self.listeners(nxt)))
        return None

    def cycle_error(self, key: str) -> CellCycleError | None:
        """Build a :class:`CellCycleError` for a cycle through *key*, if any."""
        cycle = self.find_cycle(key)
        if cycle is None:
            return None
        return CellCycleError([key_label(k) for k in cycle])
