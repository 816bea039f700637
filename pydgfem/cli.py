"""Command-line interface to the DG model problems.

``dg2d`` runs the SIPG diffusion problem, ``dg2d-advection`` the
advection–reaction problem.  Both print the convergence block on stdout.

Exit status: 0 on success, 1 on a command-line error, 2 when the linear
solver stops without converging.
"""
import argparse
import logging
import sys
from typing import Optional, Sequence

import numpy as np

from pydgfem.config import DGConfig, MeshFamily, ProblemKind, SolverType
from pydgfem.problems.driver import run_dg
from pydgfem.solvers.linear_solver import ConvergenceError

logger = logging.getLogger("pydgfem")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_NOT_CONVERGED = 2


class UsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def build_parser(prog: str = "dg2d") -> argparse.ArgumentParser:
    parser = _Parser(prog=prog, add_help=False,
                     description="2-D discontinuous Galerkin solver on the unit square.")
    parser.add_argument("-h", "-?", dest="help", action="store_true", help="Show this message and exit.")
    parser.add_argument("-e", dest="eta", type=float, default=1.0,
                        help="Penalty scale (diffusion) or upwind weight (advection). Default 1.")
    parser.add_argument("-k", dest="degree", type=int, default=1, help="Polynomial degree. Default 1.")
    parser.add_argument("-r", dest="ref_levels", type=int, default=4, help="Refinement levels. Default 4.")
    parser.add_argument("-m", dest="mesh_family", choices=[m.value for m in MeshFamily],
                        default=MeshFamily.TRIANGULAR.value, help="Mesh family.")
    parser.add_argument("-q", dest="mesh_family", action="store_const", const=MeshFamily.QUADRANGULAR.value,
                        help="Quadrangular mesh (same as -m quad).")
    parser.add_argument("-s", dest="mesh_family", action="store_const", const=MeshFamily.TRIANGULAR.value,
                        help="Triangular mesh (same as -m tri).")
    parser.add_argument("-p", dest="use_preconditioner", action="store_true", help="Jacobi preconditioner.")
    parser.add_argument("-S", dest="shatter", action="store_true", help="Randomly perturb interior points.")
    parser.add_argument("-u", dest="use_upwinding", action="store_true", help="Upwind advective fluxes.")
    parser.add_argument("-v", dest="verbose", action="store_true", help="Print solver iterations.")
    parser.add_argument("-o", dest="export_path", type=str, default=None,
                        help="Write the solution archive to this path (.vtu by default).")
    parser.add_argument("--samples", dest="samples_path", type=str, default=None,
                        help="Write 'x y u_h' point samples of the solution to this text file.")
    parser.add_argument("--solver", choices=[s.value for s in SolverType], default=SolverType.CG.value,
                        help="Linear solver. Default cg.")
    return parser


def parse_config(argv: Optional[Sequence[str]] = None, prog: str = "dg2d") -> DGConfig:
    """Turn command-line flags into a :class:`DGConfig`; raises :class:`UsageError`."""
    parser = build_parser(prog)
    xargs = parser.parse_args(argv)
    if xargs.help:
        raise UsageError("help requested")
    try:
        return DGConfig(
            eta=xargs.eta, degree=xargs.degree, ref_levels=xargs.ref_levels,
            use_preconditioner=xargs.use_preconditioner, use_upwinding=xargs.use_upwinding,
            shatter=xargs.shatter, solver=xargs.solver, mesh_family=xargs.mesh_family,
            verbose=xargs.verbose, export_path=xargs.export_path, samples_path=xargs.samples_path,
        )
    except ValueError as exc:
        raise UsageError(str(exc))


def main(argv: Optional[Sequence[str]] = None, problem_kind=ProblemKind.DIFFUSION) -> int:
    problem_kind = ProblemKind(problem_kind)
    prog = "dg2d" if problem_kind is ProblemKind.DIFFUSION else "dg2d-advection"
    try:
        cfg = parse_config(argv, prog)
    except UsageError as exc:
        build_parser(prog).print_usage(sys.stderr)
        print(f"wrong arguments: {exc}", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(level=logging.DEBUG if cfg.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    logger.debug("Configuration: %s", cfg)

    # invalid operations raise for the whole run
    with np.errstate(invalid="raise"):
        try:
            status = run_dg(cfg, problem_kind)
        except ConvergenceError as exc:
            logger.error("%s", exc)
            print(f"Linear solver did not converge: {exc}")
            print(f"  achieved residual:     {exc.result.residual:g}")
            return EXIT_NOT_CONVERGED
    print(status)
    return EXIT_OK


def main_diffusion(argv: Optional[Sequence[str]] = None) -> int:
    return main(argv, ProblemKind.DIFFUSION)


def main_advection(argv: Optional[Sequence[str]] = None) -> int:
    return main(argv, ProblemKind.ADVECTION_REACTION)


if __name__ == "__main__":
    sys.exit(main())
