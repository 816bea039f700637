"""Example: SIPG diffusion convergence study on triangles and quads"""
import matplotlib.pyplot as plt

from pydgfem.config import DGConfig
from pydgfem.io.visualization import plot_cell_values, plot_convergence
from pydgfem.problems import run_diffusion_solver, cell_values
from pydgfem.utils.meshgen import get_mesher

degree = 2
fig, axes = plt.subplots(1, 3, figsize=(16, 5))

for family, ax in zip(("tri", "quad"), axes[:2]):
    mesher = get_mesher(family)
    hs, errs = [], []
    for r in range(1, 5):
        cfg = DGConfig(degree=degree, ref_levels=r, use_preconditioner=True)
        status, sol = run_diffusion_solver(mesher(r), cfg)
        print(f"{family} r={r}: h={status.mesh_h:.4f}  err_qp={status.l2_error_qp:.3e}  "
              f"err_mm={status.l2_error_mm:.3e}  its={status.iterations}")
        hs.append(status.mesh_h)
        errs.append([status.l2_error_qp, status.l2_error_mm])
    plot_convergence(hs, list(zip(*errs)), ax=ax, labels=["qp", "mm"])
    ax.set_title(f"{family}, k={degree}")

mesh = get_mesher("tri")(4)
status, sol = run_diffusion_solver(mesh, DGConfig(degree=degree))
plot_cell_values(mesh, cell_values(mesh, sol, degree), ax=axes[2], title="zeroth coefficient")
plt.tight_layout()
plt.show()
