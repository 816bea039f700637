"""pydgfem.postprocess.l2_error
L² error of a DG solution against a reference function, measured two ways.

``err_qp`` integrates ``(u_ref − u_h)²`` directly at the quadrature points.
``err_mm`` first projects ``u_ref`` onto the local polynomial space and then
measures the coefficient difference in the local mass-matrix norm.  Both are
squared errors summed over cells.
"""
import logging
from typing import Callable, Tuple

import numpy as np

from pydgfem.fem.basis import make_basis
from pydgfem.integration.quadrature import integrate

logger = logging.getLogger(__name__)


def local_mass_matrix(mesh, cell, degree: int) -> np.ndarray:
    basis = make_basis(mesh, cell, degree)
    pts, wts = integrate(mesh, cell, 2 * degree)
    phi = basis.eval_many(pts)                      # (nq, B)
    return phi.T @ (wts[:, None] * phi)


def l2_projection(mesh, cell, degree: int, func: Callable) -> np.ndarray:
    """Coefficients of the local L² projection of ``func(x, y)``."""
    basis = make_basis(mesh, cell, degree)
    pts, wts = integrate(mesh, cell, 2 * degree)
    phi = basis.eval_many(pts)
    M = phi.T @ (wts[:, None] * phi)
    a = phi.T @ (wts * np.array([func(*p) for p in pts]))
    return np.linalg.solve(M, a)


def compute_l2_errors(mesh, sol: np.ndarray, degree: int,
                      ref_sol: Callable) -> Tuple[float, float]:
    """Return ``(err_qp, err_mm)``, the squared L² errors of ``sol``."""
    err_qp = 0.0
    err_mm = 0.0
    for cell in mesh.cells:
        basis = make_basis(mesh, cell, degree)
        B = basis.size()
        ofs = mesh.offset(cell)
        loc_sol = sol[B * ofs: B * ofs + B]

        M = np.zeros((B, B))
        a = np.zeros(B)
        pts, wts = integrate(mesh, cell, 2 * degree)
        for ep, w in zip(pts, wts):
            phi = basis.eval(ep)
            sv = ref_sol(*ep)
            M += w * np.outer(phi, phi)
            a += w * sv * phi
            cv = loc_sol @ phi
            err_qp += w * (sv - cv) ** 2

        proj = np.linalg.solve(M, a)
        diff = proj - loc_sol
        err_mm += float(diff @ M @ diff)

    logger.info("L2 errors: qp = %.6e, mm = %.6e", np.sqrt(err_qp), np.sqrt(max(err_mm, 0.0)))
    return float(err_qp), float(err_mm)
