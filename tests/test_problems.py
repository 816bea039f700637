import numpy as np
import pytest
from numpy.testing import assert_allclose

from pydgfem.config import DGConfig, ProblemKind
from pydgfem.problems.driver import (SolverStatus, assemble_diffusion, assemble_advection_reaction,
                                     cell_values, sample_solution, run_diffusion_solver,
                                     run_advection_reaction_solver, run_dg)
from pydgfem.problems.manufactured import Coefficients, diffusion_problem, advection_reaction_problem
from pydgfem.fem.basis import make_basis, scalar_basis_size
from pydgfem.integration.quadrature import integrate
from pydgfem.postprocess.l2_error import l2_projection
from pydgfem.solvers.linear_solver import (ConjugateGradientParameters, ConvergenceError,
                                           conjugate_gradient)
from pydgfem.utils.meshgen import get_mesher, shatter_mesh


def test_config_clamps_and_penalty():
    cfg = DGConfig(degree=0, ref_levels=-2, eta=2.0)
    assert cfg.degree == 1
    assert cfg.ref_levels == 0
    assert cfg.penalty == 6.0
    assert DGConfig(degree=2).penalty == 12.0
    with pytest.raises(ValueError):
        DGConfig(eta=0.0)
    with pytest.raises(ValueError):
        DGConfig(solver="gmres")


def test_manufactured_data():
    diff = diffusion_problem()
    assert np.isclose(diff.rhs(0.5, 0.5), 2 * np.pi ** 2)
    assert np.isclose(diff.ref_sol(0.25, 0.5), np.sin(np.pi / 4))
    assert diff.dirichlet(0.3, 0.0) == 0.0

    adv = advection_reaction_problem()
    x = 0.3
    assert np.isclose(adv.rhs(x, 0.7), np.pi * np.cos(np.pi * x) + np.sin(np.pi * x))
    assert_allclose(adv.coefficients.beta(0.1, 0.2), [1.0, 0.0])
    assert adv.coefficients.mu(0.1, 0.2) == 1.0


def test_coefficient_fields():
    pts = np.array([[0.0, 0.0], [0.5, 1.0]])
    fields = Coefficients().nodal_fields(pts)
    assert set(fields) == {"mu", "epsilon", "beta_x", "beta_y"}
    assert_allclose(fields["beta_x"], 1.0)
    assert_allclose(fields["beta_y"], 0.0)
    assert_allclose(fields["epsilon"], 1.0)


def test_status_block():
    status = SolverStatus(mesh_h=0.5, L2_errsq_qp=0.04, L2_errsq_mm=0.01)
    text = str(status)
    assert text.startswith("Convergence results")
    assert "mesh size (h):         0.5" in text
    assert "L2-norm error (qp):    0.2" in text
    assert "L2-norm error (mm):    0.1" in text


@pytest.mark.parametrize("family", ["tri", "quad"])
@pytest.mark.parametrize("degree", [1, 2])
def test_system_size_and_symmetry(family, degree):
    mesh = get_mesher(family)(2)
    cfg = DGConfig(degree=degree)
    diff = assemble_diffusion(mesh, cfg, diffusion_problem())
    assert diff.system_size() == scalar_basis_size(degree, 2) * mesh.n_cells
    lhs = diff.lhs
    norm = abs(lhs).max()
    assert abs(lhs - lhs.T).max() <= 1e-10 * norm

    adv = assemble_advection_reaction(mesh, cfg, advection_reaction_problem()).lhs
    assert abs(adv - adv.T).max() > 1e-6 * abs(adv).max()


def test_assembly_order_independence():
    mesh = shatter_mesh(get_mesher("tri")(2), 0.2)
    cfg = DGConfig(degree=2)
    prob = diffusion_problem()
    a = assemble_diffusion(mesh, cfg, prob)
    order = list(np.random.default_rng(1).permutation(mesh.n_cells))
    b = assemble_diffusion(mesh, cfg, prob, cells=[mesh.cells[i] for i in order])
    assert abs(a.lhs - b.lhs).max() <= 1e-12 * abs(a.lhs).max()
    assert np.array_equal(a.rhs, b.rhs)


def test_preconditioned_diagonal_is_bounded_away_from_zero():
    mesh = get_mesher("quad")(3)
    assm = assemble_diffusion(mesh, DGConfig(use_preconditioner=True), diffusion_problem())
    assert np.all(np.abs(assm.lhs.diagonal()) > 1e-2)
    assert_allclose(assm.pc.diagonal(), 1.0 / assm.lhs.diagonal())


def test_diffusion_s1():
    mesh = get_mesher("tri")(4)
    cfg = DGConfig(eta=1.0, degree=1, ref_levels=4)
    status, sol = run_diffusion_solver(mesh, cfg)
    assert np.isclose(status.mesh_h, np.sqrt(2) / 16)
    assert status.l2_error_qp <= 2e-2
    assert status.iterations <= 2 * len(sol)
    assert status.residual <= 1e-8
    assert status.L2_errsq_qp >= 0.0 and status.L2_errsq_mm >= 0.0
    assert abs(status.L2_errsq_qp - status.L2_errsq_mm) <= max(status.L2_errsq_qp, status.L2_errsq_mm)


def test_diffusion_on_quads_with_preconditioner_s5():
    mesh = get_mesher("quad")(4)
    status, _ = run_diffusion_solver(mesh, DGConfig(use_preconditioner=True))
    assert status.l2_error_qp <= 2e-2


def test_diffusion_operator_is_positive_definite():
    mesh = get_mesher("tri")(3)
    lhs = assemble_diffusion(mesh, DGConfig(), diffusion_problem()).lhs.toarray()
    assert np.linalg.eigvalsh(lhs).min() > 0.0


def test_preconditioner_gives_same_solution_s6():
    mesh = get_mesher("tri")(4)
    plain, sol = run_diffusion_solver(mesh, DGConfig())
    with_pc, sol_pc = run_diffusion_solver(mesh, DGConfig(use_preconditioner=True))
    assert plain.residual <= 1e-8 and with_pc.residual <= 1e-8
    assert with_pc.iterations < plain.iterations
    assert np.linalg.norm(sol - sol_pc) <= 1e-6 * np.linalg.norm(sol)
    assert np.isclose(plain.l2_error_qp, with_pc.l2_error_qp, rtol=1e-4)

    # tight solves agree to 1e-8
    assm = assemble_diffusion(mesh, DGConfig(use_preconditioner=True), diffusion_problem())
    N = assm.system_size()
    tight = dict(rr_tol=1e-13, max_iter=10 * N)
    x = conjugate_gradient(ConjugateGradientParameters(**tight), assm.lhs, assm.rhs).x
    x_pc = conjugate_gradient(ConjugateGradientParameters(use_preconditioner=True, **tight),
                              assm.lhs, assm.rhs, M=assm.pc).x
    assert np.linalg.norm(x - x_pc) <= 1e-8 * np.linalg.norm(x)


@pytest.mark.parametrize("family,degree", [("tri", 2), ("quad", 1), ("quad", 2)])
def test_preconditioner_reduces_iterations(family, degree):
    mesh = get_mesher(family)(4)
    plain, _ = run_diffusion_solver(mesh, DGConfig(degree=degree))
    with_pc, _ = run_diffusion_solver(mesh, DGConfig(degree=degree, use_preconditioner=True))
    assert with_pc.iterations < plain.iterations


def test_advection_upwinding_s3_s4():
    mesh = get_mesher("tri")(4)
    centred, _ = run_advection_reaction_solver(mesh, DGConfig())
    upwind, _ = run_advection_reaction_solver(mesh, DGConfig(use_upwinding=True, eta=1.0))
    assert centred.l2_error_qp <= 5e-2
    assert upwind.l2_error_qp < centred.l2_error_qp


def test_shattered_mesh_still_converges():
    cfg = DGConfig(ref_levels=3, shatter=True)
    status = run_dg(cfg, ProblemKind.DIFFUSION)
    assert status.l2_error_qp < 0.1


def test_non_convergence_raises(monkeypatch):
    mesh = get_mesher("tri")(2)
    import pydgfem.solvers.linear_solver as ls
    original = ls.ConjugateGradientParameters

    def capped(**kw):
        kw["max_iter"] = 1
        return original(**kw)

    monkeypatch.setattr(ls, "ConjugateGradientParameters", capped)
    with pytest.raises(ConvergenceError) as exc:
        run_diffusion_solver(mesh, DGConfig())
    assert exc.value.result.iterations == 1


def test_outputs(tmp_path):
    mesh = get_mesher("tri")(2)
    cfg = DGConfig(export_path=str(tmp_path / "dg.vtu"), samples_path=str(tmp_path / "samples.txt"))
    status, sol = run_advection_reaction_solver(mesh, cfg)
    assert (tmp_path / "dg.vtu").exists()
    samples = np.loadtxt(tmp_path / "samples.txt")
    # 28 lattice points per triangle for 6 subdivisions
    assert samples.shape == (28 * mesh.n_cells, 3)
    assert_allclose(cell_values(mesh, sol, 1), sol[::3])
    assert_allclose(sample_solution(mesh, sol, 1), samples, atol=1e-9)


def test_export_failure_is_logged(tmp_path, caplog):
    mesh = get_mesher("tri")(1)
    cfg = DGConfig(export_path=str(tmp_path / "missing_dir" / "dg.vtu"))
    status, _ = run_diffusion_solver(mesh, cfg)
    assert status.L2_errsq_qp >= 0.0
    assert any("Export" in r.message for r in caplog.records)


def fitted_rate(hs, errs):
    return np.polyfit(np.log(hs), np.log(errs), 1)[0]


@pytest.mark.slow
def test_diffusion_refinement_s2():
    hs, errs = [], []
    for r in (2, 3, 4, 5):
        status, _ = run_diffusion_solver(get_mesher("tri")(r), DGConfig(ref_levels=r))
        hs.append(status.mesh_h)
        errs.append(status.l2_error_qp)
    assert fitted_rate(hs, errs) >= 1.8


@pytest.mark.slow
@pytest.mark.parametrize("degree", [1, 2])
def test_optimal_convergence_rate(degree):
    hs, qp, mm = [], [], []
    for r in (2, 3, 4):
        status, _ = run_diffusion_solver(get_mesher("tri")(r), DGConfig(degree=degree))
        hs.append(status.mesh_h)
        qp.append(status.l2_error_qp)
        mm.append(status.l2_error_mm)
    assert fitted_rate(hs, qp) >= degree + 0.8
    assert fitted_rate(hs, mm) >= degree + 0.8


@pytest.mark.slow
@pytest.mark.parametrize("degree", [1, 2])
def test_error_measures_differ_by_projection_error(degree):
    prob = diffusion_problem()
    ratios = []
    for r in (2, 3, 4):
        mesh = get_mesher("tri")(r)
        status, _ = run_diffusion_solver(mesh, DGConfig(degree=degree), prob)
        # err_qp = err_mm + ‖u − Πu‖² since u_h − Πu lies in the local space
        proj_err = 0.0
        for cl in mesh.cells:
            coeffs = l2_projection(mesh, cl, degree, prob.ref_sol)
            basis = make_basis(mesh, cl, degree)
            pts, wts = integrate(mesh, cl, 2 * degree)
            proj_err += sum(w * (prob.ref_sol(*p) - coeffs @ basis.eval(p)) ** 2
                            for p, w in zip(pts, wts))
        assert np.isclose(status.L2_errsq_qp, status.L2_errsq_mm + proj_err, rtol=1e-8)
        ratios.append(status.L2_errsq_qp / status.L2_errsq_mm)
    assert all(1.0 <= q <= 2.0 for q in ratios)
