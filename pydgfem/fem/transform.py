"""pydgfem.fem.transform
Reference → physical mapping for P1 triangles and Q1 quadrilaterals.
"""
import numpy as np
from pydgfem.fem.reference import get_reference


def _cell_coords(mesh, cell):
    return mesh.cell_points(cell).astype(float)


def x_mapping(mesh, cell, xi_eta):
    ref = get_reference(mesh.element_type)
    N = ref.shape(*xi_eta)
    return N @ _cell_coords(mesh, cell)          # (2,)


def jacobian(mesh, cell, xi_eta):
    """J[a, b] = d x_a / d xi_b."""
    ref = get_reference(mesh.element_type)
    dN = ref.grad(*xi_eta)                        # (n, 2)
    return _cell_coords(mesh, cell).T @ dN


def det_jacobian(mesh, cell, xi_eta):
    return np.linalg.det(jacobian(mesh, cell, xi_eta))


def map_points(mesh, cell, ref_pts):
    """
    Map a batch of reference points into ``cell``.

    Returns
    -------
    x : (nq, 2) physical points
    detJ : (nq,) absolute Jacobian determinants
    """
    ref = get_reference(mesh.element_type)
    coords = _cell_coords(mesh, cell)
    N, dN = ref.tabulate(ref_pts)                 # (nq, n), (nq, n, 2)
    x = N @ coords
    J = np.einsum('na,qnb->qab', coords, dN)      # (nq, 2, 2)
    detJ = np.abs(np.linalg.det(J))
    if np.any(detJ <= 1e-14):
        raise ValueError(f"Degenerate or inverted cell {cell.id}.")
    return x, detJ
