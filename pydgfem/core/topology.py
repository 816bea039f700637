from dataclasses import dataclass, field
from typing import Tuple, Dict, Optional


@dataclass(slots=True)
class Edge:
    gid: int
    nodes: Tuple[int, int]      # Global point indices, oriented CCW w.r.t. the left cell
    left: int                   # Cell ID on the left side of the edge
    right: Optional[int]        # Cell ID on the right side, None on the boundary
    lid: Optional[int] = None   # Local edge index within the left cell
    tag: str = ""

    @property
    def is_boundary(self) -> bool:
        return self.right is None

    def other(self, cell_id: int) -> Optional[int]:
        """Return the cell across the edge as seen from ``cell_id``."""
        if cell_id == self.left:
            return self.right
        if cell_id == self.right:
            return self.left
        raise ValueError(f"Cell {cell_id} is not incident to edge {self.gid}.")


@dataclass(slots=True)
class Element:
    id: int                                   # Stable zero-based offset
    point_ids: Tuple[int, ...]                # Corner points, CCW
    element_type: str = "tri"
    edges: Tuple[int, ...] = field(default_factory=tuple)
    neighbors: Dict[int, Optional[int]] = field(default_factory=dict)
    tag: str = ""

    def contains_point(self, point_id: int) -> bool:
        return point_id in self.point_ids

    def contains_edge(self, edge_id: int) -> bool:
        return edge_id in self.edges

    def __hash__(self):
        return hash(self.id)
