"""pydgfem.fem.basis
Scaled monomial basis for discontinuous P_k spaces on arbitrary planar cells.

On a cell with barycenter (x_c, y_c) and diameter h the basis functions are

    phi_(a,b)(x, y) = X^a * Y^b,   X = (x - x_c)/h,  Y = (y - y_c)/h,

for all a + b <= k, ordered by total degree and then by decreasing power of X:

    0 <-> 1,  1 <-> X,  2 <-> Y,  3 <-> X^2,  4 <-> XY,  5 <-> Y^2, ...

The same polynomial space is used on triangles and quadrilaterals, so the
local size is always ``scalar_basis_size(k, 2)``.  The zeroth function is the
constant 1.
"""
from functools import lru_cache
from math import comb

import numpy as np


def scalar_basis_size(degree: int, dim: int) -> int:
    """Number of polynomials of total degree <= ``degree`` in ``dim`` variables."""
    if degree < 0 or dim < 1:
        raise ValueError(f"Invalid basis request: degree={degree}, dim={dim}")
    return comb(degree + dim, dim)


@lru_cache(maxsize=None)
def multi_index_matrix(degree: int) -> np.ndarray:
    """Exponents ``(a, b)`` of each basis function, shape ``(B, 2)``."""
    idx = []
    for total in range(degree + 1):
        for b in range(total + 1):
            idx.append((total - b, b))
    out = np.array(idx, dtype=int)
    out.flags.writeable = False
    return out


class ScaledMonomialBasis:
    def __init__(self, center, h: float, degree: int):
        if h <= 0.0:
            raise ValueError(f"Cell scale must be positive, got {h}")
        self.center = np.asarray(center, dtype=float)
        self.h = float(h)
        self.degree = int(degree)
        self.powers = multi_index_matrix(self.degree)

    def size(self) -> int:
        return self.powers.shape[0]

    def __len__(self):
        return self.size()

    def _scaled(self, pt):
        return (np.asarray(pt, dtype=float) - self.center) / self.h

    def eval(self, pt) -> np.ndarray:
        """Basis values at ``pt``, shape ``(B,)``."""
        X, Y = self._scaled(pt)
        a, b = self.powers[:, 0], self.powers[:, 1]
        return X ** a * Y ** b

    def eval_grads(self, pt) -> np.ndarray:
        """Physical gradients at ``pt``, shape ``(B, 2)``."""
        X, Y = self._scaled(pt)
        a, b = self.powers[:, 0], self.powers[:, 1]
        # a * X^(a-1) vanishes for a == 0; clamp the exponent to avoid 0**-1
        dX = np.where(a > 0, a * X ** np.maximum(a - 1, 0), 0.0) * Y ** b
        dY = X ** a * np.where(b > 0, b * Y ** np.maximum(b - 1, 0), 0.0)
        return np.column_stack((dX, dY)) / self.h

    def eval_many(self, pts) -> np.ndarray:
        """Basis values at several points, shape ``(nq, B)``."""
        return np.array([self.eval(p) for p in np.atleast_2d(pts)])

    def __repr__(self):
        return f"ScaledMonomialBasis(k={self.degree}, B={self.size()}, h={self.h:.3g})"


def make_basis(mesh, cell, degree: int) -> ScaledMonomialBasis:
    """Scaled monomial basis of degree ``degree`` attached to ``cell``."""
    return ScaledMonomialBasis(mesh.barycenter(cell), mesh.cell_diameter(cell), degree)
