"""pydgfem.problems.manufactured
Coefficients and manufactured solutions for the two model problems.

Data are written symbolically with sympy and lambdified to callables of
physical coordinates ``(x, y)``; source terms are derived from the exact
solution so the pair is always consistent.
"""
from dataclasses import dataclass, field
from typing import Callable, Tuple

import numpy as np
import sympy as sp

x_s, y_s = sp.symbols("x y")


@dataclass
class Coefficients:
    """Reaction ``mu``, advection ``beta`` and diffusion ``epsilon``."""
    mu_sym: sp.Expr = sp.S(1)
    beta_sym: Tuple[sp.Expr, sp.Expr] = (sp.S(1), sp.S(0))
    epsilon_sym: sp.Expr = sp.S(1)
    mu: Callable = field(init=False, repr=False)
    epsilon: Callable = field(init=False, repr=False)
    _beta: Callable = field(init=False, repr=False)

    def __post_init__(self):
        self.mu = _scalar(self.mu_sym)
        self.epsilon = _scalar(self.epsilon_sym)
        self._beta = sp.lambdify((x_s, y_s), sp.Matrix(self.beta_sym), "numpy")

    def beta(self, x, y) -> np.ndarray:
        return np.asarray(self._beta(x, y), dtype=float).ravel()

    def nodal_fields(self, points: np.ndarray, names=("mu", "epsilon", "beta_x", "beta_y")):
        """Coefficients sampled at mesh points, keyed by export name."""
        out = {}
        betas = np.array([self.beta(*p) for p in points]) if len(points) else np.zeros((0, 2))
        for name in names:
            if name == "mu":
                out[name] = np.array([self.mu(*p) for p in points], dtype=float)
            elif name == "epsilon":
                out[name] = np.array([self.epsilon(*p) for p in points], dtype=float)
            elif name == "beta_x":
                out[name] = betas[:, 0]
            elif name == "beta_y":
                out[name] = betas[:, 1]
            else:
                raise KeyError(name)
        return out


def _scalar(expr) -> Callable:
    f = sp.lambdify((x_s, y_s), expr, "numpy")
    # lambdify of a constant returns a scalar regardless of input
    return lambda x, y: float(f(x, y))


@dataclass
class ManufacturedProblem:
    """Exact solution with the matching source and Dirichlet data."""
    name: str
    u_sym: sp.Expr
    f_sym: sp.Expr
    g_sym: sp.Expr
    coefficients: Coefficients

    def __post_init__(self):
        self.ref_sol = _scalar(self.u_sym)
        self.rhs = _scalar(self.f_sym)
        self.dirichlet = _scalar(self.g_sym)


def diffusion_problem(coefficients: Coefficients = None) -> ManufacturedProblem:
    """``u = sin(πx) sin(πy)``, ``f = −Δu``, homogeneous Dirichlet data."""
    coefficients = coefficients or Coefficients()
    u = sp.sin(sp.pi * x_s) * sp.sin(sp.pi * y_s)
    f = sp.simplify(-sp.diff(u, x_s, 2) - sp.diff(u, y_s, 2))
    return ManufacturedProblem("diffusion", u, f, sp.S(0), coefficients)


def advection_reaction_problem(coefficients: Coefficients = None) -> ManufacturedProblem:
    """``u = sin(πx)``, ``f = β·∇u + μu``; the inflow datum is zero."""
    coefficients = coefficients or Coefficients()
    u = sp.sin(sp.pi * x_s)
    bx, by = coefficients.beta_sym
    f = bx * sp.diff(u, x_s) + by * sp.diff(u, y_s) + coefficients.mu_sym * u
    return ManufacturedProblem("advection_reaction", u, f, sp.S(0), coefficients)
