"""pydgfem.utils.meshgen
Structured mesh generators on rectangles and the refinement-level meshers
used by the drivers.
"""
import logging
from typing import Callable, Optional, Tuple

import numba
import numpy as np

from pydgfem.config import MeshFamily
from pydgfem.core.mesh import Mesh, QuadMesh, TriangularMesh

logger = logging.getLogger(__name__)

__all__ = ["structured_quad", "structured_triangles", "get_mesher", "shatter_mesh"]


def _grid_points(Lx: float, Ly: float, nx: int, ny: int) -> np.ndarray:
    x = np.linspace(0.0, Lx, nx + 1)
    y = np.linspace(0.0, Ly, ny + 1)
    X, Y = np.meshgrid(x, y)
    return np.column_stack([X.ravel(), Y.ravel()])


def structured_quad(Lx: float, Ly: float, *, nx: int, ny: int,
                    offset: Optional[Tuple[float, float]] = None, numba_path: bool = True):
    """
    ``nx × ny`` quadrilaterals on ``[0, Lx] × [0, Ly]``.

    Returns ``(points (n, 2), cells (nx*ny, 4))`` with CCW corners
    (bottom-left, bottom-right, top-right, top-left).
    """
    if nx < 1 or ny < 1:
        raise ValueError(f"Need at least one cell per direction, got nx={nx}, ny={ny}")
    if numba_path:
        points, cells = _structured_q1_numba(float(Lx), float(Ly), int(nx), int(ny))
    else:
        points, cells = _structured_q1(Lx, Ly, nx, ny)
    if offset is not None:
        points = points + np.asarray(offset, dtype=np.float64)
    return points, cells


def _structured_q1(Lx, Ly, nx, ny):
    points = _grid_points(Lx, Ly, nx, ny)
    cells = []
    for j in range(ny):
        for i in range(nx):
            bl = j * (nx + 1) + i
            cells.append((bl, bl + 1, bl + nx + 2, bl + nx + 1))
    return points, np.array(cells, dtype=np.int64)


@numba.jit(nopython=True, parallel=True, cache=True)
def _structured_q1_numba(Lx: float, Ly: float, nx: int, ny: int):
    n_px = nx + 1
    points = np.zeros((n_px * (ny + 1), 2), dtype=np.float64)
    x_coords = np.linspace(0.0, Lx, n_px)
    y_coords = np.linspace(0.0, Ly, ny + 1)
    for j in numba.prange(ny + 1):
        for i in range(n_px):
            points[j * n_px + i, 0] = x_coords[i]
            points[j * n_px + i, 1] = y_coords[j]

    cells = np.empty((nx * ny, 4), dtype=np.int64)
    for el in numba.prange(nx * ny):
        j = el // nx
        i = el % nx
        bl = j * n_px + i
        cells[el, 0] = bl
        cells[el, 1] = bl + 1
        cells[el, 2] = bl + n_px + 1
        cells[el, 3] = bl + n_px
    return points, cells


def structured_triangles(Lx: float, Ly: float, *, nx_quads: int, ny_quads: int,
                         offset: Optional[Tuple[float, float]] = None,
                         alternate: bool = False):
    """
    Split each of ``nx_quads × ny_quads`` rectangles into two CCW triangles.

    By default every rectangle is cut along its bottom-left/top-right
    diagonal.  With ``alternate=True`` the diagonal flips in a checkerboard
    pattern, so interior vertices alternate between valence 4 and 8.
    """
    if nx_quads < 1 or ny_quads < 1:
        raise ValueError(f"Need at least one cell per direction, got {nx_quads}x{ny_quads}")
    points = _grid_points(Lx, Ly, nx_quads, ny_quads)
    if offset is not None:
        points = points + np.asarray(offset, dtype=np.float64)

    get_node_id = lambda ix, iy: iy * (nx_quads + 1) + ix
    cells = np.empty((2 * nx_quads * ny_quads, 3), dtype=np.int64)
    k = 0
    for iy in range(ny_quads):
        for ix in range(nx_quads):
            v00 = get_node_id(ix, iy)
            v10 = get_node_id(ix + 1, iy)
            v01 = get_node_id(ix, iy + 1)
            v11 = get_node_id(ix + 1, iy + 1)
            if alternate and (ix + iy) % 2:
                cells[k] = (v00, v10, v01)
                cells[k + 1] = (v10, v11, v01)
            else:
                cells[k] = (v00, v10, v11)
                cells[k + 1] = (v00, v11, v01)
            k += 2
    return points, cells


def get_mesher(family) -> Callable[[int], Mesh]:
    """
    Return ``create_mesh(ref_levels)`` for the unit square.

    Refinement level ``r`` gives ``2^r × 2^r`` base squares; on the
    triangular family each square is split in two along alternating
    diagonals.
    """
    family = MeshFamily(family)

    def create_mesh(ref_levels: int) -> Mesh:
        if ref_levels < 0:
            raise ValueError(f"ref_levels must be non-negative, got {ref_levels}")
        n = 2 ** int(ref_levels)
        if family is MeshFamily.TRIANGULAR:
            points, cells = structured_triangles(1.0, 1.0, nx_quads=n, ny_quads=n, alternate=True)
            mesh = TriangularMesh(points, cells)
        else:
            points, cells = structured_quad(1.0, 1.0, nx=n, ny=n)
            mesh = QuadMesh(points, cells)
        logger.info("Created %s", mesh)
        return mesh

    return create_mesh


def shatter_mesh(mesh: Mesh, amplitude: float = 0.2, seed: int = 0) -> Mesh:
    """
    Randomly perturb interior points in place.

    Each interior point moves by a uniform offset in
    ``[-amplitude*s, amplitude*s]^2``, ``s`` being its shortest incident edge.
    Boundary points stay put.  Deterministic for a given ``seed``.
    """
    mesh.compute_connectivity()
    n_pts = len(mesh.points)
    shortest = np.full(n_pts, np.inf)
    on_boundary = np.zeros(n_pts, dtype=bool)
    for e in mesh.edges_list:
        a, b = e.nodes
        length = mesh.face_diameter(e)
        shortest[a] = min(shortest[a], length)
        shortest[b] = min(shortest[b], length)
        if e.is_boundary:
            on_boundary[a] = on_boundary[b] = True

    interior = ~on_boundary & np.isfinite(shortest)
    scale = np.where(interior, shortest, 0.0)
    rng = np.random.default_rng(seed)
    shift = rng.uniform(-1.0, 1.0, size=(n_pts, 2)) * (amplitude * scale)[:, None]
    mesh.points[interior] += shift[interior].astype(mesh.points.dtype)
    logger.info("Shattered %d interior points (amplitude %.3g)", int(interior.sum()), amplitude)
    return mesh
