import numpy as np
import pytest
from numpy.testing import assert_allclose

from pydgfem.core.mesh import TriangularMesh, QuadMesh
from pydgfem.fem.basis import scalar_basis_size, multi_index_matrix, ScaledMonomialBasis, make_basis
from pydgfem.fem import transform
from pydgfem.utils.meshgen import structured_triangles, structured_quad


def test_scalar_basis_size():
    assert scalar_basis_size(0, 2) == 1
    assert scalar_basis_size(1, 2) == 3
    assert scalar_basis_size(2, 2) == 6
    assert scalar_basis_size(3, 1) == 4
    with pytest.raises(ValueError):
        scalar_basis_size(-1, 2)


def test_multi_index_ordering():
    idx = multi_index_matrix(2)
    assert idx.tolist() == [[0, 0], [1, 0], [0, 1], [2, 0], [1, 1], [0, 2]]
    with pytest.raises(ValueError):
        idx[0, 0] = 5


def test_values_at_center_and_scaling():
    basis = ScaledMonomialBasis(center=(0.5, 0.25), h=0.5, degree=2)
    assert len(basis) == 6
    assert_allclose(basis.eval([0.5, 0.25]), [1, 0, 0, 0, 0, 0])
    # X = 1, Y = -1
    assert_allclose(basis.eval([1.0, -0.25]), [1, 1, -1, 1, -1, 1])


def test_gradients_match_finite_differences():
    basis = ScaledMonomialBasis(center=(0.3, 0.2), h=0.4, degree=3)
    p = np.array([0.45, 0.1])
    eps = 1e-6
    fd_x = (basis.eval(p + [eps, 0]) - basis.eval(p - [eps, 0])) / (2 * eps)
    fd_y = (basis.eval(p + [0, eps]) - basis.eval(p - [0, eps])) / (2 * eps)
    assert_allclose(basis.eval_grads(p), np.column_stack((fd_x, fd_y)), atol=1e-7)


def test_gradient_of_constant_at_center_is_finite():
    basis = ScaledMonomialBasis(center=(0.0, 0.0), h=1.0, degree=2)
    g = basis.eval_grads([0.0, 0.0])
    assert np.all(np.isfinite(g))
    assert_allclose(g[0], 0.0)
    assert_allclose(g[1], [1.0, 0.0])
    assert_allclose(g[2], [0.0, 1.0])


def test_same_size_on_both_families():
    pts, cells = structured_triangles(1.0, 1.0, nx_quads=1, ny_quads=1)
    tri = TriangularMesh(pts, cells)
    pts, cells = structured_quad(1.0, 1.0, nx=1, ny=1)
    quad = QuadMesh(pts, cells)
    for k in (1, 2, 3):
        assert make_basis(tri, tri.cells[0], k).size() == scalar_basis_size(k, 2)
        assert make_basis(quad, quad.cells[0], k).size() == scalar_basis_size(k, 2)


def test_reference_map_round_trip():
    pts, cells = structured_quad(2.0, 1.0, nx=1, ny=1)
    mesh = QuadMesh(pts, cells)
    cell = mesh.cells[0]
    assert_allclose(transform.x_mapping(mesh, cell, (-1.0, -1.0)), [0.0, 0.0])
    assert_allclose(transform.x_mapping(mesh, cell, (1.0, 1.0)), [2.0, 1.0])
    assert np.isclose(transform.det_jacobian(mesh, cell, (0.0, 0.0)), 0.5)
