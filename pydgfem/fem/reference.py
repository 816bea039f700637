# pydgfem.fem.reference
"""
Reference-element geometry shape functions.

The cell maps are the linear P1 map on the triangle (0,0)-(1,0)-(0,1) and the
bilinear Q1 map on [-1,1]^2.  Shape functions are built symbolically from a
Vandermonde system and lambdified once per element type.
"""
from functools import lru_cache
import numpy as np
import sympy as sp

# Reference corners, CCW, matching the local point order of mesh cells.
REFERENCE_CORNERS = {
    'tri':  ((0, 0), (1, 0), (0, 1)),
    'quad': ((-1, -1), (1, -1), (1, 1), (-1, 1)),
}

# Reference measure of each cell type.
REFERENCE_MEASURE = {'tri': 0.5, 'quad': 4.0}


class Ref:
    def __init__(self, element_type, shape_lambda, deriv_lambdas):
        self.element_type = element_type
        self.shape_lambda = shape_lambda
        self.deriv_lambdas = deriv_lambdas
        self.n_nodes = len(REFERENCE_CORNERS[element_type])

    def shape(self, xi, eta):
        return np.asarray(self.shape_lambda(xi, eta), dtype=float).ravel()

    def grad(self, xi, eta):
        """Reference gradients, shape ``(n_nodes, 2)``."""
        dphi_dxi = np.asarray(self.deriv_lambdas[(1, 0)](xi, eta), dtype=float).ravel()
        dphi_deta = np.asarray(self.deriv_lambdas[(0, 1)](xi, eta), dtype=float).ravel()
        return np.hstack((dphi_dxi[:, None], dphi_deta[:, None]))

    def tabulate(self, pts):
        """Shape values ``(nq, n)`` and gradients ``(nq, n, 2)`` at many points."""
        pts = np.atleast_2d(pts)
        N = np.array([self.shape(xi, eta) for xi, eta in pts])
        dN = np.array([self.grad(xi, eta) for xi, eta in pts])
        return N, dN


def _geometry_shape_functions(element_type: str):
    """
    Return lambdified shape functions and first derivatives for the P1/Q1
    geometry map of ``element_type``.
    """
    xi_sym, eta_sym = sp.symbols("xi eta")
    corners = [(sp.S(a), sp.S(b)) for a, b in REFERENCE_CORNERS[element_type]]
    if element_type == 'tri':
        monomials = [sp.S(1), xi_sym, eta_sym]
    else:
        monomials = [sp.S(1), xi_sym, eta_sym, xi_sym * eta_sym]

    # Vandermonde-like matrix V[i, j] = m_j(node_i)
    n = len(corners)
    V = sp.zeros(n, n)
    for i, (a, b) in enumerate(corners):
        for j, m in enumerate(monomials):
            V[i, j] = m.subs({xi_sym: a, eta_sym: b})
    try:
        coeffs = V.T.inv()
    except ValueError:  # sympy's NonInvertibleMatrixError
        raise RuntimeError(f"Vandermonde matrix is singular for '{element_type}'.")

    mono_col = sp.Matrix(monomials)
    basis = [sp.expand((coeffs.row(k) * mono_col)[0, 0]) for k in range(n)]

    derivs = {}
    for alpha in ((1, 0), (0, 1)):
        derivs[alpha] = [sp.diff(phi, xi_sym, alpha[0], eta_sym, alpha[1]) for phi in basis]

    shape_lambda = sp.lambdify((xi_sym, eta_sym), sp.Matrix(basis), "numpy")
    deriv_lambdas = {alpha: sp.lambdify((xi_sym, eta_sym), sp.Matrix(d), "numpy")
                     for alpha, d in derivs.items()}
    return shape_lambda, deriv_lambdas


def lattice_points(element_type: str, n: int) -> np.ndarray:
    """Equispaced sample points of the reference cell, ``n`` subdivisions per edge."""
    if n < 1:
        raise ValueError(n)
    t = np.linspace(0.0, 1.0, n + 1)
    if element_type == 'tri':
        return np.array([(t[i], t[j]) for j in range(n + 1) for i in range(n + 1 - j)])
    if element_type == 'quad':
        s = 2.0 * t - 1.0
        return np.array([(a, b) for b in s for a in s])
    raise KeyError(element_type)


@lru_cache(maxsize=None)
def get_reference(element_type: str) -> Ref:
    if element_type not in REFERENCE_CORNERS:
        raise KeyError(element_type)
    shape_l, deriv_lambdas = _geometry_shape_functions(element_type)
    return Ref(element_type, shape_l, deriv_lambdas)
