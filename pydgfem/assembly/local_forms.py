"""pydgfem.assembly.local_forms
Local cell and face kernels for the two DG model problems:

* diffusion  −Δu = f  with **SIPG** (Symmetric Interior Penalty Galerkin)
  and Nitsche-imposed Dirichlet data;
* advection–reaction  β·∇u + μu = f  with centred or upwinded face fluxes
  and a homogeneous inflow datum.

Kernels are written from the point of view of one cell ``t``: each face is
visited once from each side, so a face kernel only produces the row blocks of
``t`` (``A_tt`` against itself, ``A_tn`` against the neighbour ``n``).
All coefficient callbacks take physical coordinates ``(x, y)``.
"""
from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np

from pydgfem.core.mesh import Mesh
from pydgfem.core.topology import Edge, Element
from pydgfem.fem.basis import make_basis
from pydgfem.integration.quadrature import integrate, integrate_face


@dataclass
class FaceBlocks:
    """Face contribution of cell ``t``; ``A_tn`` is zero on boundary faces."""
    A_tt: np.ndarray
    A_tn: np.ndarray
    loc_rhs: np.ndarray
    neighbour: Element
    has_neighbour: bool


# -----------------------------------------------------------------------------
# Volume kernels
# -----------------------------------------------------------------------------

def volume_diffusion(mesh: Mesh, cell: Element, degree: int,
                     rhs: Callable) -> Tuple[np.ndarray, np.ndarray]:
    """Stiffness block ``Σ w ∇φ ∇φᵀ`` and load ``Σ w f φ``."""
    basis = make_basis(mesh, cell, degree)
    B = basis.size()
    K = np.zeros((B, B))
    loc_rhs = np.zeros(B)

    pts, wts = integrate(mesh, cell, 2 * degree)
    for ep, w in zip(pts, wts):
        phi = basis.eval(ep)
        dphi = basis.eval_grads(ep)
        K += w * dphi @ dphi.T
        loc_rhs += w * rhs(*ep) * phi
    return K, loc_rhs


def volume_advection_reaction(mesh: Mesh, cell: Element, degree: int, mu: Callable,
                              beta: Callable, rhs: Callable) -> Tuple[np.ndarray, np.ndarray]:
    """Reaction plus advection block ``Σ w [μ φφᵀ + φ (∇φ·β)ᵀ]`` and load."""
    basis = make_basis(mesh, cell, degree)
    B = basis.size()
    K = np.zeros((B, B))
    loc_rhs = np.zeros(B)

    pts, wts = integrate(mesh, cell, 2 * degree)
    for ep, w in zip(pts, wts):
        phi = basis.eval(ep)
        dphi = basis.eval_grads(ep)
        K += mu(*ep) * w * np.outer(phi, phi)                    # reaction
        K += w * np.outer(phi, dphi @ np.asarray(beta(*ep)))     # advection
        loc_rhs += w * rhs(*ep) * phi
    return K, loc_rhs


# -----------------------------------------------------------------------------
# Face kernels
# -----------------------------------------------------------------------------

def face_diffusion(mesh: Mesh, cell: Element, face: Edge, degree: int, eta: float,
                   dirichlet: Callable = lambda x, y: 0.0) -> FaceBlocks:
    """
    SIPG face blocks for ``cell``.

    ``eta`` is the already-scaled penalty (``3 k² η_cfg``); the local penalty
    is ``eta / diam(face)``.  On boundary faces the consistency and
    symmetry terms use full factors and the Dirichlet datum enters
    ``loc_rhs``.
    """
    tbasis = make_basis(mesh, cell, degree)
    B = tbasis.size()
    ncl, has_neighbour = mesh.neighbour_via(cell, face)
    nbasis = make_basis(mesh, ncl, degree)
    if nbasis.size() != B:
        raise ValueError(f"Basis size mismatch across face {face.gid}: {B} vs {nbasis.size()}")

    A_tt = np.zeros((B, B))
    A_tn = np.zeros((B, B))
    loc_rhs = np.zeros(B)

    n = mesh.normal(cell, face)
    eta_l = eta / mesh.face_diameter(face)
    f_pts, f_wts = integrate_face(mesh, face, 2 * degree)

    for ep, w in zip(f_pts, f_wts):
        tphi = tbasis.eval(ep)
        tdphi_n = tbasis.eval_grads(ep) @ n

        if not has_neighbour:
            g = dirichlet(*ep)
            A_tt += w * eta_l * np.outer(tphi, tphi)
            A_tt -= w * np.outer(tphi, tdphi_n)
            A_tt -= w * np.outer(tdphi_n, tphi)
            loc_rhs -= w * g * tdphi_n
            loc_rhs += w * eta_l * g * tphi
            continue

        A_tt += w * eta_l * np.outer(tphi, tphi)
        A_tt -= 0.5 * w * np.outer(tphi, tdphi_n)
        A_tt -= 0.5 * w * np.outer(tdphi_n, tphi)

        nphi = nbasis.eval(ep)
        ndphi_n = nbasis.eval_grads(ep) @ n
        A_tn -= w * eta_l * np.outer(tphi, nphi)
        A_tn -= 0.5 * w * np.outer(tphi, ndphi_n)
        A_tn += 0.5 * w * np.outer(tdphi_n, nphi)

    return FaceBlocks(A_tt, A_tn, loc_rhs, ncl, has_neighbour)


def face_advection_reaction(mesh: Mesh, cell: Element, face: Edge, degree: int,
                            beta: Callable, eta: float = 1.0,
                            use_upwinding: bool = False) -> FaceBlocks:
    """
    Advective flux blocks for ``cell``.

    With ``b = β·ν`` the interior flux coefficient is ``b − eta·|b|`` when
    upwinding and ``b`` otherwise.  Boundary faces only see the inflow part
    ``b⁻ = ½(|b| − b)`` where ``b < 0``; the inflow datum is zero.
    """
    tbasis = make_basis(mesh, cell, degree)
    B = tbasis.size()
    ncl, has_neighbour = mesh.neighbour_via(cell, face)
    nbasis = make_basis(mesh, ncl, degree)
    if nbasis.size() != B:
        raise ValueError(f"Basis size mismatch across face {face.gid}: {B} vs {nbasis.size()}")

    A_tt = np.zeros((B, B))
    A_tn = np.zeros((B, B))
    loc_rhs = np.zeros(B)

    n = mesh.normal(cell, face)
    f_pts, f_wts = integrate_face(mesh, face, 2 * degree)

    for ep, w in zip(f_pts, f_wts):
        tphi = tbasis.eval(ep)
        beta_nf = float(np.dot(beta(*ep), n))

        if not has_neighbour:
            if beta_nf < 0.0:
                beta_minus = 0.5 * (abs(beta_nf) - beta_nf)
                A_tt += w * beta_minus * np.outer(tphi, tphi)
            continue

        coeff = beta_nf - eta * abs(beta_nf) if use_upwinding else beta_nf
        A_tt -= 0.5 * w * coeff * np.outer(tphi, tphi)
        A_tn += 0.5 * w * coeff * np.outer(tphi, nbasis.eval(ep))

    return FaceBlocks(A_tt, A_tn, loc_rhs, ncl, has_neighbour)
