"""pydgfem.problems.driver
End-to-end runs of the DG model problems: assemble, solve, measure, export.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from pydgfem.assembly.assembler import Assembler
from pydgfem.assembly.local_forms import (face_advection_reaction, face_diffusion,
                                          volume_advection_reaction, volume_diffusion)
from pydgfem.config import DGConfig, ProblemKind
from pydgfem.fem import transform
from pydgfem.fem.basis import make_basis, scalar_basis_size
from pydgfem.fem.reference import lattice_points
from pydgfem.io.export import ExportSink
from pydgfem.postprocess.l2_error import compute_l2_errors
from pydgfem.problems.manufactured import (ManufacturedProblem, advection_reaction_problem,
                                           diffusion_problem)
from pydgfem.solvers.linear_solver import ConvergenceError, solve_system
from pydgfem.utils.meshgen import get_mesher, shatter_mesh

logger = logging.getLogger(__name__)

ARCHIVE_MESH_NAME = "test_mesh"
SHATTER_AMPLITUDE = 0.2


@dataclass
class SolverStatus:
    mesh_h: float = 0.0
    L2_errsq_qp: float = 0.0
    L2_errsq_mm: float = 0.0
    iterations: int = 0
    residual: float = 0.0

    @property
    def l2_error_qp(self) -> float:
        return float(np.sqrt(self.L2_errsq_qp))

    @property
    def l2_error_mm(self) -> float:
        return float(np.sqrt(self.L2_errsq_mm))

    def __str__(self):
        return ("Convergence results: \n"
                f"  mesh size (h):         {self.mesh_h:g}\n"
                f"  L2-norm error (qp):    {self.l2_error_qp:g}\n"
                f"  L2-norm error (mm):    {self.l2_error_mm:g}")


# ----------------------------------------------------------------------------
#  Assembly loops
# ----------------------------------------------------------------------------
def _assemble(mesh, degree: int, build_pc: bool, volume_kernel: Callable,
              face_kernel: Callable, cells: Optional[Sequence] = None) -> Assembler:
    assm = Assembler(mesh, degree, build_pc)
    for tcl in (mesh.cells if cells is None else cells):
        K, loc_rhs = volume_kernel(tcl)
        for fc in mesh.faces(tcl):
            blocks = face_kernel(tcl, fc)
            assm.assemble_face(mesh, tcl, tcl, blocks.A_tt)
            if blocks.has_neighbour:
                assm.assemble_face(mesh, tcl, blocks.neighbour, blocks.A_tn)
            loc_rhs = loc_rhs + blocks.loc_rhs
        assm.assemble_cell(mesh, tcl, K, loc_rhs)
    assm.finalize()
    return assm


def assemble_diffusion(mesh, cfg: DGConfig, problem: ManufacturedProblem,
                       cells: Optional[Sequence] = None) -> Assembler:
    """SIPG system for ``−Δu = f``; ``cells`` overrides the assembly order."""
    mesh.compute_connectivity()
    degree = cfg.degree
    eta = cfg.penalty
    return _assemble(
        mesh, degree, cfg.use_preconditioner,
        lambda c: volume_diffusion(mesh, c, degree, problem.rhs),
        lambda c, f: face_diffusion(mesh, c, f, degree, eta, problem.dirichlet),
        cells)


def assemble_advection_reaction(mesh, cfg: DGConfig, problem: ManufacturedProblem,
                                cells: Optional[Sequence] = None) -> Assembler:
    """Advection–reaction system; ``cfg.eta`` is the upwind weight."""
    mesh.compute_connectivity()
    degree = cfg.degree
    coeffs = problem.coefficients
    return _assemble(
        mesh, degree, cfg.use_preconditioner,
        lambda c: volume_advection_reaction(mesh, c, degree, coeffs.mu, coeffs.beta, problem.rhs),
        lambda c, f: face_advection_reaction(mesh, c, f, degree, coeffs.beta, cfg.eta,
                                             cfg.use_upwinding),
        cells)


# ----------------------------------------------------------------------------
#  Output helpers
# ----------------------------------------------------------------------------
def cell_values(mesh, sol: np.ndarray, degree: int) -> np.ndarray:
    """Zeroth basis coefficient of every cell."""
    bs = scalar_basis_size(degree, 2)
    return np.array([sol[bs * mesh.offset(c)] for c in mesh.cells])


def sample_solution(mesh, sol: np.ndarray, degree: int, n: int = 6) -> np.ndarray:
    """Evaluate the DG solution on an ``n``-subdivided lattice of every cell; rows are ``x y u_h``."""
    ref_pts = lattice_points(mesh.element_type, n)
    rows = []
    for cl in mesh.cells:
        basis = make_basis(mesh, cl, degree)
        B = basis.size()
        ofs = mesh.offset(cl)
        loc_sol = sol[B * ofs: B * ofs + B]
        x, _ = transform.map_points(mesh, cl, ref_pts)
        for tp in x:
            rows.append((tp[0], tp[1], loc_sol @ basis.eval(tp)))
    return np.array(rows)


def export_solution(path, mesh, sol: np.ndarray, degree: int, problem: ManufacturedProblem,
                    nodal_names: Tuple[str, ...]):
    with ExportSink(path) as sink:
        sink.add_mesh(mesh, ARCHIVE_MESH_NAME)
        sink.add_zonal_variable(ARCHIVE_MESH_NAME, "solution", cell_values(mesh, sol, degree))
        fields = problem.coefficients.nodal_fields(mesh.points, nodal_names)
        for name in nodal_names:
            sink.add_nodal_variable(ARCHIVE_MESH_NAME, name, fields[name])


def _postprocess(mesh, cfg: DGConfig, sol, problem, nodal_names):
    if cfg.export_path:
        try:
            export_solution(cfg.export_path, mesh, sol, cfg.degree, problem, nodal_names)
        except OSError as exc:
            logger.error("Export to '%s' failed: %s", cfg.export_path, exc)
    if cfg.samples_path:
        try:
            np.savetxt(cfg.samples_path, sample_solution(mesh, sol, cfg.degree), fmt="%.10g")
        except OSError as exc:
            logger.error("Writing samples to '%s' failed: %s", cfg.samples_path, exc)


def _solve(cfg: DGConfig, assm: Assembler, status: SolverStatus, use_normal_eqns: bool):
    result = solve_system(cfg, assm.lhs, assm.rhs, assm.pc, use_normal_eqns=use_normal_eqns)
    status.iterations = result.iterations
    status.residual = result.residual
    if not result.converged:
        raise ConvergenceError(result)
    return result.x


# ----------------------------------------------------------------------------
#  Problem runs
# ----------------------------------------------------------------------------
def run_diffusion_solver(mesh, cfg: DGConfig,
                         problem: Optional[ManufacturedProblem] = None) -> Tuple[SolverStatus, np.ndarray]:
    problem = problem or diffusion_problem()
    status = SolverStatus(mesh_h=mesh.diameter())

    logger.info("Assembling diffusion system (k=%d, penalty=%g)", cfg.degree, cfg.penalty)
    assm = assemble_diffusion(mesh, cfg, problem)
    sol = _solve(cfg, assm, status, use_normal_eqns=False)

    status.L2_errsq_qp, status.L2_errsq_mm = compute_l2_errors(mesh, sol, cfg.degree, problem.ref_sol)
    _postprocess(mesh, cfg, sol, problem, ("mu", "epsilon", "beta_x", "beta_y"))
    return status, sol


def run_advection_reaction_solver(mesh, cfg: DGConfig,
                                  problem: Optional[ManufacturedProblem] = None) -> Tuple[SolverStatus, np.ndarray]:
    problem = problem or advection_reaction_problem()
    status = SolverStatus(mesh_h=mesh.diameter())

    logger.info("Assembling advection-reaction system (k=%d, eta=%g, upwinding=%s)",
                cfg.degree, cfg.eta, cfg.use_upwinding)
    assm = assemble_advection_reaction(mesh, cfg, problem)
    # CG needs the normal equations on this asymmetric system
    sol = _solve(cfg, assm, status, use_normal_eqns=True)

    status.L2_errsq_qp, status.L2_errsq_mm = compute_l2_errors(mesh, sol, cfg.degree, problem.ref_sol)
    _postprocess(mesh, cfg, sol, problem, ("mu", "beta_x", "beta_y"))
    return status, sol


def run_dg(cfg: DGConfig, problem_kind=ProblemKind.DIFFUSION) -> SolverStatus:
    """Build the mesh selected by ``cfg`` and run one problem on it."""
    problem_kind = ProblemKind(problem_kind)
    mesh = get_mesher(cfg.mesh_family)(cfg.ref_levels)
    if cfg.shatter:
        shatter_mesh(mesh, SHATTER_AMPLITUDE)

    if problem_kind is ProblemKind.DIFFUSION:
        logger.info("Running dG diffusion solver: degree %d, eta %g", cfg.degree, cfg.eta)
        status, _ = run_diffusion_solver(mesh, cfg)
    else:
        logger.info("Running dG advection-reaction solver: degree %d, eta %g", cfg.degree, cfg.eta)
        status, _ = run_advection_reaction_solver(mesh, cfg)
    return status
