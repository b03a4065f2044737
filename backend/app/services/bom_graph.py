"""
Sub-assembly graph checks

Every BOM component of kind "bom" is an edge parent -> component_bom_id.
The union of those edges must stay a DAG. Edges are plain ids in
bom_components, so traversal goes through explicit lookups rather than
ORM relationships.
"""
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.core.status_config import ComponentType
from app.exceptions import CircularReferenceError, MaxDepthExceededError
from app.logging_config import get_logger
from app.models.bom import BOMComponent

logger = get_logger(__name__)

_VISITING = 1
_DONE = 2


def proposed_sub_assembly_ids(components: Iterable) -> List[int]:
    """
    Sub-assembly ids referenced by a component list.

    Accepts request schemas (``kind``) or ORM rows (``component_type``).
    """
    ids = []
    for component in components:
        kind = getattr(component, "kind", None) or getattr(component, "component_type", None)
        if kind == ComponentType.BOM.value and component.component_bom_id is not None:
            ids.append(component.component_bom_id)
    return ids


class BOMGraph:
    """Cycle detection over the stored sub-assembly graph"""

    def __init__(self, db: Session, max_depth: Optional[int] = None):
        self.db = db
        self.max_depth = max_depth or get_settings().BOM_MAX_DEPTH

    def sub_assembly_ids(self, bom_id: int) -> List[int]:
        """Direct sub-assembly ids of a stored BOM, in component order."""
        rows = (
            self.db.query(BOMComponent.component_bom_id)
            .filter(
                BOMComponent.bom_id == bom_id,
                BOMComponent.component_type == ComponentType.BOM.value,
            )
            .order_by(BOMComponent.sort_order, BOMComponent.id)
            .all()
        )
        return [row[0] for row in rows]

    def validate_acyclic(self, bom_id: Optional[int], components: Iterable) -> None:
        """
        Reject a component list that would close a cycle through bom_id.

        Args:
            bom_id: BOM being edited, or None for a BOM not yet saved
            components: The full proposed component list

        Raises:
            CircularReferenceError: path is [bom_id, child, ..., bom_id]
            MaxDepthExceededError: a chain below bom_id is deeper than max_depth
        """
        child_ids = proposed_sub_assembly_ids(components)

        if bom_id is not None and bom_id in child_ids:
            self._reject([bom_id, bom_id])

        # A new BOM has no id yet, so nothing stored can point back at it
        if bom_id is None:
            return

        visited: Set[int] = set()
        for child_id in child_ids:
            path = self._path_to(child_id, bom_id, visited)
            if path:
                self._reject([bom_id] + path)

    def _path_to(self, start: int, target: int, visited: Set[int]) -> Optional[List[int]]:
        """
        Iterative DFS from start looking for target.

        visited is shared across start points so diamonds are walked once,
        and guarantees termination if stored data already holds a cycle.
        """
        stack = [(start, [start])]
        while stack:
            node, path = stack.pop()
            if node == target:
                return path
            if node in visited:
                continue
            visited.add(node)
            if len(path) > self.max_depth:
                raise MaxDepthExceededError(self.max_depth, bom_id=target)
            for child_id in reversed(self.sub_assembly_ids(node)):
                if child_id == target or child_id not in visited:
                    stack.append((child_id, path + [child_id]))
        return None

    def _reject(self, path: List[int]) -> None:
        logger.warning(
            "Circular reference rejected",
            extra={"bom_id": path[0], "cycle_path": path},
        )
        raise CircularReferenceError(path)

    def find_cycle(self, root_id: int) -> Optional[List[int]]:
        """
        Look for an existing cycle reachable from root_id.

        Used for diagnostics on stored data. Returns the cycle as
        [a, b, ..., a] or None.
        """
        state: Dict[int, int] = {}
        stack: List[int] = []

        def visit(node: int) -> Optional[List[int]]:
            if len(stack) >= self.max_depth:
                raise MaxDepthExceededError(self.max_depth, bom_id=root_id)
            state[node] = _VISITING
            stack.append(node)
            for child_id in self.sub_assembly_ids(node):
                if state.get(child_id) == _VISITING:
                    return stack[stack.index(child_id):] + [child_id]
                if child_id not in state:
                    found = visit(child_id)
                    if found:
                        return found
            stack.pop()
            state[node] = _DONE
            return None

        return visit(root_id)
