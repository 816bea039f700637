"""pydgfem.io.visualization
Quick matplotlib views of meshes and per-cell values.
"""
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.collections import PolyCollection


def plot_cell_values(mesh, values, *, ax=None, cmap="viridis", show_edges=True,
                     colorbar=True, title=None):
    """
    Fill every cell with one value, e.g. the zeroth DG coefficient.

    Returns the axes.
    """
    values = np.asarray(values, dtype=float)
    if values.shape != (len(mesh.cells),):
        raise ValueError(f"Expected one value per cell ({len(mesh.cells)}), got {values.shape}")
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 7))

    polys = [mesh.cell_points(c) for c in mesh.cells]
    coll = PolyCollection(polys, array=values, cmap=cmap,
                          edgecolors=(0.1, 0.1, 0.1, 0.3) if show_edges else 'face',
                          linewidths=0.4)
    ax.add_collection(coll)
    if colorbar:
        ax.figure.colorbar(coll, ax=ax)

    ax.set_xlim(mesh.points[:, 0].min(), mesh.points[:, 0].max())
    ax.set_ylim(mesh.points[:, 1].min(), mesh.points[:, 1].max())
    ax.set_aspect('equal', 'box')
    if title:
        ax.set_title(title)
    return ax


def plot_convergence(hs, errors, *, ax=None, labels=None):
    """Log-log error vs. mesh size, one line per error series."""
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))
    hs = np.asarray(hs, dtype=float)
    errors = np.atleast_2d(np.asarray(errors, dtype=float))
    for i, err in enumerate(errors):
        label = labels[i] if labels else None
        ax.loglog(hs, err, 'o-', label=label)
    ax.set_xlabel('h')
    ax.set_ylabel(r'$\|u - u_h\|_{L^2}$')
    ax.grid(True, which='both', ls=':')
    if labels:
        ax.legend()
    return ax
