"""Example: advection–reaction with centred and upwinded fluxes on a shattered mesh"""
import matplotlib.pyplot as plt

from pydgfem.config import DGConfig
from pydgfem.io.visualization import plot_cell_values
from pydgfem.problems import run_advection_reaction_solver, cell_values
from pydgfem.utils.meshgen import get_mesher, shatter_mesh

mesh = shatter_mesh(get_mesher("tri")(4), amplitude=0.2, seed=3)

fig, axes = plt.subplots(1, 2, figsize=(12, 5))
for upwind, ax in zip((False, True), axes):
    cfg = DGConfig(use_upwinding=upwind, eta=1.0)
    status, sol = run_advection_reaction_solver(mesh, cfg)
    label = "upwind" if upwind else "centred"
    print(label)
    print(status)
    plot_cell_values(mesh, cell_values(mesh, sol, cfg.degree), ax=ax,
                     title=f"{label}: L2 error {status.l2_error_qp:.2e}")
plt.tight_layout()
plt.show()
