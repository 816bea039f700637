import logging
import numpy as np
from typing import Tuple, List, Dict

from pydgfem.core.topology import Edge, Element

logger = logging.getLogger(__name__)


class Mesh:
    """
    Planar unstructured mesh made of a single cell type.

    The mesh stores points and cells only; the face graph (unique edges,
    left/right cells, neighbours) is built by :meth:`compute_connectivity`,
    which must run once before any face query.  Normals, diameters and
    barycenters are always evaluated from the current ``points`` array, so a
    perturbation of the points after connectivity was built is picked up.

    Concrete families are :class:`TriangularMesh` and :class:`QuadMesh`.
    """
    element_type: str = ""
    n_corners: int = 0

    # Local corner pairs forming each edge, in CCW order.
    _EDGE_TABLE = {
        'tri':  ((0, 1), (1, 2), (2, 0)),
        'quad': ((0, 1), (1, 2), (2, 3), (3, 0)),
    }

    def __init__(self, points: np.ndarray, cells_connectivity: np.ndarray):
        if type(self) is Mesh:
            raise TypeError("Mesh is abstract; use TriangularMesh or QuadMesh.")
        points = np.asarray(points)
        if not np.issubdtype(points.dtype, np.floating):
            points = points.astype(float)
        if points.ndim != 2 or points.shape[1] != 2:
            raise ValueError(f"points must have shape (n, 2), got {points.shape}")
        conn = np.asarray(cells_connectivity, dtype=int)
        if conn.ndim != 2 or conn.shape[1] != self.n_corners:
            raise ValueError(f"{self.element_type} cells need {self.n_corners} points each, "
                             f"got connectivity of shape {conn.shape}")

        self.points: np.ndarray = points
        self.cells: List[Element] = []
        for cid, row in enumerate(conn):
            ids = [int(i) for i in row]
            if self._signed_area(ids) < 0.0:
                ids = ids[::-1]
            self.cells.append(Element(id=cid, point_ids=tuple(ids), element_type=self.element_type))

        self.edges_list: List[Edge] = []
        self._edge_dict: Dict[Tuple[int, int], Edge] = {}
        self._connected = False

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------
    def compute_connectivity(self):
        """Build unique edges, their left/right cells and cell neighbours."""
        if self._connected:
            return
        edge_defs = self._EDGE_TABLE[self.element_type]

        # Step 1: map each geometric edge to the cells sharing it
        edge_incidences: Dict[Tuple[int, int], List[Tuple[int, int]]] = {}
        for cell in self.cells:
            for lid, (c1, c2) in enumerate(edge_defs):
                key = tuple(sorted((cell.point_ids[c1], cell.point_ids[c2])))
                edge_incidences.setdefault(key, []).append((cell.id, lid))

        # Step 2: create unique Edge objects oriented along the left cell
        for gid, (key, shared) in enumerate(edge_incidences.items()):
            if len(shared) > 2:
                raise ValueError(f"Edge {key} is shared by {len(shared)} cells; mesh is not manifold.")
            left, lid = shared[0]
            right = shared[1][0] if len(shared) > 1 else None
            c1, c2 = edge_defs[lid]
            left_pts = self.cells[left].point_ids
            edge = Edge(gid=gid, nodes=(left_pts[c1], left_pts[c2]), left=left, right=right,
                        lid=lid, tag="boundary" if right is None else "")
            self.edges_list.append(edge)
            self._edge_dict[key] = edge

        # Step 3: per-cell edge lists and neighbours
        for cell in self.cells:
            gids = []
            for lid, (c1, c2) in enumerate(edge_defs):
                edge = self._edge_dict[tuple(sorted((cell.point_ids[c1], cell.point_ids[c2])))]
                gids.append(edge.gid)
                cell.neighbors[lid] = edge.other(cell.id)
            cell.edges = tuple(gids)

        self._connected = True
        logger.debug("Connectivity built: %d cells, %d edges (%d on the boundary)",
                     len(self.cells), len(self.edges_list),
                     sum(e.is_boundary for e in self.edges_list))

    def _require_connectivity(self):
        if not self._connected:
            raise RuntimeError("Face queries need compute_connectivity() to be called first.")

    def faces(self, cell: Element) -> List[Edge]:
        """Faces of ``cell`` in local CCW order."""
        self._require_connectivity()
        return [self.edges_list[g] for g in cell.edges]

    def neighbour_via(self, cell: Element, face: Edge) -> Tuple[Element, bool]:
        """
        Return ``(neighbour, True)`` across an interior face and
        ``(cell, False)`` on a boundary face; the cell itself is the sentinel.
        """
        self._require_connectivity()
        other = face.other(cell.id)
        if other is None:
            return cell, False
        return self.cells[other], True

    def is_boundary(self, face: Edge) -> bool:
        return face.is_boundary

    def boundary_faces(self) -> List[Edge]:
        self._require_connectivity()
        return [e for e in self.edges_list if e.is_boundary]

    def edge(self, edge_id: int) -> Edge:
        if not 0 <= edge_id < len(self.edges_list):
            raise IndexError(f"Edge ID {edge_id} out of range.")
        return self.edges_list[edge_id]

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    def offset(self, cell: Element) -> int:
        return cell.id

    def point_ids(self, cell: Element) -> Tuple[int, ...]:
        return cell.point_ids

    def cell_points(self, cell: Element) -> np.ndarray:
        return self.points[list(cell.point_ids)]

    def face_points(self, face: Edge) -> np.ndarray:
        return self.points[list(face.nodes)]

    def normal(self, cell: Element, face: Edge) -> np.ndarray:
        """Outward unit normal of ``face`` with respect to ``cell``."""
        self._require_connectivity()
        try:
            lid = cell.edges.index(face.gid)
        except ValueError:
            raise ValueError(f"Edge {face.gid} is not a face of cell {cell.id}.")
        c1, c2 = self._EDGE_TABLE[self.element_type][lid]
        v_start = self.points[cell.point_ids[c1]]
        v_end = self.points[cell.point_ids[c2]]
        d = v_end - v_start
        raw = np.array([d[1], -d[0]], dtype=float)
        length = np.linalg.norm(raw)
        if length <= 1e-14:
            raise ValueError(f"Degenerate edge {face.gid}.")
        return raw / length

    def face_diameter(self, face: Edge) -> float:
        p = self.face_points(face)
        return float(np.linalg.norm(p[1] - p[0]))

    def cell_diameter(self, cell: Element) -> float:
        p = self.cell_points(cell)
        diff = p[:, None, :] - p[None, :, :]
        return float(np.sqrt((diff ** 2).sum(axis=-1)).max())

    def diameter(self) -> float:
        """Mesh size ``h``: the largest cell diameter."""
        return max(self.cell_diameter(c) for c in self.cells)

    def measure(self, cell: Element) -> float:
        return abs(self._signed_area(cell.point_ids))

    def barycenter(self, cell: Element) -> np.ndarray:
        """Area centroid of the cell polygon."""
        p = self.cell_points(cell).astype(float)
        x, y = p[:, 0], p[:, 1]
        xn, yn = np.roll(x, -1), np.roll(y, -1)
        cross = x * yn - xn * y
        area = 0.5 * cross.sum()
        cx = ((x + xn) * cross).sum() / (6.0 * area)
        cy = ((y + yn) * cross).sum() / (6.0 * area)
        return np.array([cx, cy])

    def areas(self) -> np.ndarray:
        return np.array([self.measure(c) for c in self.cells])

    def _signed_area(self, ids) -> float:
        p = self.points[list(ids)]
        x, y = p[:, 0], p[:, 1]
        return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    def __repr__(self):
        return (f"<{type(self).__name__} n_points={len(self.points)}, "
                f"n_cells={len(self.cells)}, "
                f"n_edges={len(self.edges_list)}, "
                f"elem_type='{self.element_type}'>")


class TriangularMesh(Mesh):
    element_type = 'tri'
    n_corners = 3


class QuadMesh(Mesh):
    element_type = 'quad'
    n_corners = 4
