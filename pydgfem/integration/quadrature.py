"""pydgfem.integration.quadrature
Quadrature provider for 1‑D segments, triangles and quads.

Every rule is requested by the polynomial *degree* it must integrate exactly;
the number of Gauss points is derived from it.
"""
import numpy as np
import numba as _nb
from functools import lru_cache
from numpy.polynomial.legendre import leggauss

from pydgfem.fem import transform
from pydgfem.fem.reference import REFERENCE_CORNERS


# -------------------------------------------------------------------------
# 1‑D Gauss–Legendre
# -------------------------------------------------------------------------
def gauss_legendre(n_points: int):
    if n_points < 1:
        raise ValueError(n_points)
    return leggauss(n_points)  # (points, weights) on [-1, 1]


def n_points_for_degree(degree: int) -> int:
    """Smallest n with 2n - 1 >= degree."""
    if degree < 0:
        raise ValueError(degree)
    return degree // 2 + 1


def _gl01(n_points: int):
    """Gauss–Legendre nodes and weights mapped to [0,1]."""
    xi, w = gauss_legendre(int(n_points))
    return 0.5 * (xi + 1.0), 0.5 * w


# -------------------------------------------------------------------------
# Reference cell rules
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def quad_rule(degree: int):
    """Tensor Gauss rule on [-1,1]^2, exact for Q_degree."""
    xi, wi = gauss_legendre(n_points_for_degree(degree))
    pts = np.array([[x, y] for y in xi for x in xi])
    wts = np.array([wx * wy for wy in wi for wx in wi])
    return pts, wts


@lru_cache(maxsize=None)
def tri_rule(degree: int):
    """
    Collapsed (Duffy) Gauss rule on the triangle (0,0)-(1,0)-(0,1).

    The square → triangle map r = u, s = v(1 - u) carries a Jacobian (1 - u),
    one extra degree in u, hence the extra point.
    """
    u, w_u = _gl01((degree + 3) // 2)
    v, w_v = _gl01(n_points_for_degree(degree))
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(v):
            pts.append([ui, vj * (1.0 - ui)])
            wts.append(w_u[i] * w_v[j] * (1.0 - ui))
    return np.array(pts), np.array(wts)


def volume(element_type: str, degree: int = 2):
    if element_type == 'tri':
        return tri_rule(degree)
    if element_type == 'quad':
        return quad_rule(degree)
    raise KeyError(element_type)


def edge(element_type: str, edge_index: int, degree: int = 2):
    """
    Gauss rule on one edge of the reference cell, in reference coordinates.

    Edges follow the CCW corner order of :data:`REFERENCE_CORNERS`; the
    weights sum to the reference edge length.
    """
    corners = REFERENCE_CORNERS[element_type]
    if not 0 <= edge_index < len(corners):
        raise IndexError(edge_index)
    p0 = np.asarray(corners[edge_index], dtype=float)
    p1 = np.asarray(corners[(edge_index + 1) % len(corners)], dtype=float)
    return line_quadrature(p0, p1, degree)


# -------------------------------------------------------------------------
# Straight segments
# -------------------------------------------------------------------------
@_nb.njit(cache=True, fastmath=True)
def _map_line_rule(p0, p1, xi, w_ref):
    mid0 = 0.5*(p0[0] + p1[0]); mid1 = 0.5*(p0[1] + p1[1])
    half0 = 0.5*(p1[0] - p0[0]); half1 = 0.5*(p1[1] - p0[1])
    nQ = xi.shape[0]
    pts = np.empty((nQ, 2))
    for q in range(nQ):
        pts[q, 0] = mid0 + xi[q] * half0
        pts[q, 1] = mid1 + xi[q] * half1
    J = (half0*half0 + half1*half1) ** 0.5
    wts = w_ref * J
    return pts, wts


def line_quadrature(p0: np.ndarray, p1: np.ndarray, degree: int = 2):
    """Gauss rule on the segment p0–p1; weights sum to its length."""
    xi, w_ref = gauss_legendre(n_points_for_degree(degree))
    return _map_line_rule(np.asarray(p0, dtype=np.float64), np.asarray(p1, dtype=np.float64),
                          np.asarray(xi, dtype=np.float64), np.asarray(w_ref, dtype=np.float64))


# -------------------------------------------------------------------------
# Physical rules
# -------------------------------------------------------------------------
def integrate(mesh, cell, degree: int):
    """
    Quadrature on a physical cell.

    Returns ``(points (nq, 2), weights (nq,))``; weights include |det J| and
    sum to the cell area.
    """
    ref_pts, ref_wts = volume(mesh.element_type, degree)
    x, detJ = transform.map_points(mesh, cell, ref_pts)
    return x, ref_wts * detJ


def integrate_face(mesh, face, degree: int):
    """Quadrature on a physical edge; weights sum to the edge length."""
    p = mesh.face_points(face)
    return line_quadrature(p[0], p[1], degree)
