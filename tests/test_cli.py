import logging

import numpy as np
import pytest

from pydgfem import cli
from pydgfem.config import MeshFamily, SolverType
from pydgfem.solvers.linear_solver import (ConjugateGradientResult, ConvergenceError,
                                           TerminationReason)


def test_parse_flags():
    cfg = cli.parse_config(["-e", "2.5", "-k", "2", "-r", "3", "-q", "-p", "-S", "-u", "-v",
                            "-o", "out.vtu", "--solver", "bicgstab"])
    assert cfg.eta == 2.5
    assert cfg.degree == 2
    assert cfg.ref_levels == 3
    assert cfg.mesh_family is MeshFamily.QUADRANGULAR
    assert cfg.use_preconditioner and cfg.shatter and cfg.use_upwinding and cfg.verbose
    assert cfg.export_path == "out.vtu"
    assert cfg.solver is SolverType.BICGSTAB


def test_defaults_and_mesh_selection():
    cfg = cli.parse_config([])
    assert (cfg.eta, cfg.degree, cfg.ref_levels) == (1.0, 1, 4)
    assert cfg.mesh_family is MeshFamily.TRIANGULAR
    assert cfg.solver is SolverType.CG
    assert cli.parse_config(["-m", "quad"]).mesh_family is MeshFamily.QUADRANGULAR
    assert cli.parse_config(["-q", "-s"]).mesh_family is MeshFamily.TRIANGULAR


def test_out_of_range_values_are_clamped():
    cfg = cli.parse_config(["-k", "0", "-r", "-3"])
    assert cfg.degree == 1
    assert cfg.ref_levels == 0


@pytest.mark.parametrize("argv", [["-h"], ["-?"], ["-x"], ["-k", "two"], ["-e", "0"],
                                  ["-m", "hex"], ["stray"]])
def test_usage_errors_exit_1(argv, capsys):
    assert cli.main(argv) == cli.EXIT_USAGE
    err = capsys.readouterr().err
    assert "usage" in err
    assert "wrong arguments" in err


def test_diffusion_run(capsys):
    assert cli.main_diffusion(["-r", "1"]) == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "Convergence results" in out
    assert "L2-norm error (qp)" in out


def test_advection_run_with_outputs(tmp_path, capsys):
    archive = tmp_path / "adv.vtu"
    samples = tmp_path / "adv.txt"
    code = cli.main_advection(["-r", "1", "-u", "-q", "-o", str(archive), "--samples", str(samples)])
    assert code == cli.EXIT_OK
    assert archive.exists()
    assert np.loadtxt(samples).shape[1] == 3
    assert "Convergence results" in capsys.readouterr().out


def test_divergence_exit_2(monkeypatch, capsys):
    result = ConjugateGradientResult(np.zeros(3), TerminationReason.MAX_ITER, 6, 3.5e-3)

    def failing_run(cfg, kind):
        raise ConvergenceError(result)

    monkeypatch.setattr(cli, "run_dg", failing_run)
    assert cli.main(["-r", "1"]) == cli.EXIT_NOT_CONVERGED
    out = capsys.readouterr().out
    assert "achieved residual" in out
    assert "0.0035" in out


def test_floating_point_invalid_raises_during_run(monkeypatch):
    def nan_run(cfg, kind):
        return np.zeros(1) / np.zeros(1)

    monkeypatch.setattr(cli, "run_dg", nan_run)
    with pytest.raises(FloatingPointError):
        cli.main(["-r", "1"])


def test_error_state_is_scoped_to_the_run(monkeypatch):
    seen = {}

    def recording_run(cfg, kind):
        seen["invalid"] = np.geterr()["invalid"]
        raise ConvergenceError(ConjugateGradientResult(np.zeros(1), TerminationReason.DIVERGED, 1, 1e5))

    before = np.geterr()
    monkeypatch.setattr(cli, "run_dg", recording_run)
    cli.main(["-r", "0"])
    assert seen["invalid"] == "raise"
    assert np.geterr() == before


def test_configuration_and_failure_are_logged(monkeypatch, caplog):
    caplog.set_level(logging.DEBUG, logger="pydgfem")
    result = ConjugateGradientResult(np.zeros(3), TerminationReason.MAX_ITER, 6, 3.5e-3)

    def failing_run(cfg, kind):
        raise ConvergenceError(result)

    monkeypatch.setattr(cli, "run_dg", failing_run)
    assert cli.main(["-r", "0", "-k", "2"]) == cli.EXIT_NOT_CONVERGED
    messages = [r.getMessage() for r in caplog.records]
    assert any("Configuration" in m and "degree=2" in m for m in messages)
    assert any(r.levelno == logging.ERROR and "max_iter" in r.getMessage() for r in caplog.records)
