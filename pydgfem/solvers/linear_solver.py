r"""
linear_solver.py  –  Krylov drivers for the assembled DG systems
================================================================
The workhorse is a preconditioned conjugate gradient with a relative
residual stop, a blow-up guard and an iteration cap.  Asymmetric systems
(advection–reaction) can be fed to CG through the normal equations
``AᵀA x = Aᵀb`` without ever forming ``AᵀA``.  BiCGSTAB, QMR and a direct
solve from :mod:`scipy.sparse.linalg` are available behind the same result
record.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from pydgfem.config import DGConfig, SolverType

logger = logging.getLogger(__name__)


class TerminationReason(enum.Enum):
    CONVERGED = "converged"
    DIVERGED = "diverged"
    MAX_ITER = "max_iter"


@dataclass
class ConjugateGradientParameters:
    """Settings that govern a single CG solve."""

    rr_tol: float = 1e-8                # ‖r_k‖/‖r_0‖ convergence threshold
    rr_max: float = 1e4                 # ‖r_k‖/‖r_0‖ blow-up threshold
    max_iter: Optional[int] = None      # None → 2·N
    verbose: bool = False
    use_normal_eqns: bool = False       # CG on AᵀA x = Aᵀb
    use_preconditioner: bool = False


@dataclass
class ConjugateGradientResult:
    x: np.ndarray
    status: TerminationReason
    iterations: int
    residual: float                     # final relative residual
    history: List[float] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is TerminationReason.CONVERGED


class ConvergenceError(RuntimeError):
    """The linear solve stopped without reaching its tolerance."""

    def __init__(self, result: ConjugateGradientResult, message: Optional[str] = None):
        self.result = result
        if message is None:
            message = (f"Linear solver stopped ({result.status.value}) after "
                       f"{result.iterations} iterations, residual {result.residual:.3e}")
        super().__init__(message)


# ----------------------------------------------------------------------------
#  Conjugate gradient
# ----------------------------------------------------------------------------
def conjugate_gradient(params: ConjugateGradientParameters, A, b: np.ndarray,
                       x0: Optional[np.ndarray] = None, M=None) -> ConjugateGradientResult:
    """
    Solve ``A x = b`` (or the normal equations) with preconditioned CG.

    ``M`` is applied as ``z = M @ r`` when ``params.use_preconditioner`` is
    set; in normal-equations mode it is applied twice, ``z = M @ (M @ r)``, so
    that a Jacobi operator for ``A`` stays symmetric positive definite for
    ``AᵀA``.  The reported residual is that of the system actually iterated
    on.
    """
    b = np.asarray(b, dtype=float)
    N = b.shape[0]
    if A.shape != (N, N):
        raise ValueError(f"Operator of shape {A.shape} does not match right-hand side of length {N}")
    max_iter = params.max_iter if params.max_iter is not None else 2 * N
    x = np.zeros(N) if x0 is None else np.array(x0, dtype=float)
    use_pc = params.use_preconditioner and M is not None

    if params.use_normal_eqns:
        AT = A.T.tocsr() if sp.issparse(A) else A.T
        apply_op = lambda v: AT @ (A @ v)
        r = AT @ (b - A @ x)
    else:
        apply_op = lambda v: A @ v
        r = b - A @ x

    if use_pc:
        if params.use_normal_eqns:
            apply_pc = lambda v: M @ (M @ v)
        else:
            apply_pc = lambda v: M @ v
    else:
        apply_pc = lambda v: v

    nr0 = np.linalg.norm(r)
    if nr0 == 0.0:
        logger.info("CG: zero initial residual, nothing to do.")
        return ConjugateGradientResult(x, TerminationReason.CONVERGED, 0, 0.0, [0.0])

    z = apply_pc(r)
    p = z.copy()
    rz = float(r @ z)
    history = [1.0]
    status = TerminationReason.MAX_ITER
    rel = 1.0
    it = 0

    while it < max_iter:
        Ap = apply_op(p)
        pAp = float(p @ Ap)
        if pAp == 0.0:
            logger.warning("CG: breakdown, zero curvature along the search direction.")
            status = TerminationReason.DIVERGED
            break
        alpha = rz / pAp
        x += alpha * p
        r -= alpha * Ap
        it += 1

        rel = np.linalg.norm(r) / nr0
        history.append(rel)
        if params.verbose:
            print(f"    CG {it:5d}: rr = {rel:.3e}")
        logger.debug("CG iteration %d: rr = %.3e", it, rel)

        if rel <= params.rr_tol:
            status = TerminationReason.CONVERGED
            break
        if rel > params.rr_max:
            status = TerminationReason.DIVERGED
            break

        z = apply_pc(r)
        rz_new = float(r @ z)
        p = z + (rz_new / rz) * p
        rz = rz_new

    if status is TerminationReason.CONVERGED:
        logger.info(f"CG: converged in {it} iterations, rr = {rel:.3e}.")
    elif status is TerminationReason.DIVERGED:
        logger.info(f"CG: diverged after {it} iterations, rr = {rel:.3e}.")
    else:
        logger.info(f"CG: failed, stopped by max_iter ({max_iter}), rr = {rel:.3e}.")
    return ConjugateGradientResult(x, status, it, float(rel), history)


# ----------------------------------------------------------------------------
#  scipy alternatives
# ----------------------------------------------------------------------------
def _relative_residual(A, b, x) -> float:
    nb = np.linalg.norm(b)
    res = np.linalg.norm(b - A @ x)
    return float(res / nb) if nb > 0.0 else float(res)


def _scipy_krylov(method, lhs, rhs, params: ConjugateGradientParameters, **pc_kwargs):
    history: List[float] = []
    N = rhs.shape[0]
    max_iter = params.max_iter if params.max_iter is not None else 2 * N

    def callback(xk):
        rel = _relative_residual(lhs, rhs, xk)
        history.append(rel)
        if params.verbose:
            print(f"    {method.__name__} {len(history):5d}: rr = {rel:.3e}")

    x, info = method(lhs, rhs, rtol=params.rr_tol, maxiter=max_iter, callback=callback, **pc_kwargs)
    rel = _relative_residual(lhs, rhs, x)
    if info == 0:
        status = TerminationReason.CONVERGED
    elif info > 0:
        status = TerminationReason.MAX_ITER
    else:
        status = TerminationReason.DIVERGED
    logger.info("%s: %s after %d iterations, rr = %.3e", method.__name__, status.value, len(history), rel)
    return ConjugateGradientResult(x, status, len(history), rel, history)


def solve_system(cfg: DGConfig, lhs, rhs: np.ndarray, pc=None, *,
                 use_normal_eqns: bool = False,
                 params: Optional[ConjugateGradientParameters] = None) -> ConjugateGradientResult:
    """
    Solve an assembled system with the method selected by ``cfg.solver``.

    ``use_normal_eqns`` only affects CG; the scipy Krylov methods work on the
    (possibly asymmetric) system directly.
    """
    if params is None:
        params = ConjugateGradientParameters(
            rr_tol=1e-8, rr_max=1e4, max_iter=2 * lhs.shape[0], verbose=cfg.verbose,
            use_normal_eqns=use_normal_eqns, use_preconditioner=cfg.use_preconditioner)
    solver = SolverType(cfg.solver)
    use_pc = params.use_preconditioner and pc is not None

    if solver is SolverType.CG:
        return conjugate_gradient(params, lhs, rhs, M=pc)
    if solver is SolverType.BICGSTAB:
        return _scipy_krylov(spla.bicgstab, lhs, rhs, params, M=pc if use_pc else None)
    if solver is SolverType.QMR:
        return _scipy_krylov(spla.qmr, lhs, rhs, params, M1=pc if use_pc else None)
    if solver is SolverType.DIRECT:
        x = spla.spsolve(sp.csc_matrix(lhs), rhs)
        rel = _relative_residual(lhs, rhs, x)
        logger.info("spsolve: rr = %.3e", rel)
        return ConjugateGradientResult(x, TerminationReason.CONVERGED, 0, rel, [rel])
    raise ValueError(f"Unknown solver '{cfg.solver}'.")
