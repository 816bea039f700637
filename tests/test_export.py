import meshio
import numpy as np
import pytest
from numpy.testing import assert_allclose

from pydgfem.core.mesh import TriangularMesh, QuadMesh
from pydgfem.io.export import ExportSink
from pydgfem.utils.meshgen import structured_triangles, structured_quad


@pytest.fixture
def tri_mesh():
    pts, cells = structured_triangles(1.0, 1.0, nx_quads=2, ny_quads=2)
    return TriangularMesh(pts, cells)


def test_variables_need_a_mesh(tmp_path, tri_mesh):
    sink = ExportSink(tmp_path / "out.vtu")
    with pytest.raises(RuntimeError):
        sink.add_zonal_variable("test_mesh", "solution", np.zeros(tri_mesh.n_cells))
    sink.close()


def test_variables_after_close(tmp_path, tri_mesh):
    sink = ExportSink(tmp_path / "out.vtu")
    sink.add_mesh(tri_mesh, "test_mesh")
    sink.close()
    with pytest.raises(RuntimeError):
        sink.add_nodal_variable("test_mesh", "mu", np.ones(len(tri_mesh.points)))
    with pytest.raises(RuntimeError):
        sink.add_mesh(tri_mesh, "other")


def test_zonelist_is_one_based(tmp_path, tri_mesh):
    sink = ExportSink(tmp_path / "out.vtu")
    sink.add_mesh(tri_mesh, "test_mesh")
    stored = sink._meshes["test_mesh"]
    expected = [i + 1 for c in tri_mesh.cells for i in tri_mesh.point_ids(c)]
    assert stored.zonelist.tolist() == expected
    assert stored.shapesize == [3]
    assert stored.shapecounts == [tri_mesh.n_cells]
    sink.close()


def test_wrong_variable_length(tmp_path, tri_mesh):
    with ExportSink(tmp_path / "out.vtu") as sink:
        sink.add_mesh(tri_mesh, "test_mesh")
        with pytest.raises(ValueError):
            sink.add_zonal_variable("test_mesh", "solution", np.zeros(tri_mesh.n_cells + 1))
        with pytest.raises(ValueError):
            sink.add_nodal_variable("test_mesh", "mu", np.zeros(3))


def test_archive_round_trip(tmp_path):
    pts, cells = structured_quad(1.0, 1.0, nx=2, ny=3)
    mesh = QuadMesh(pts, cells)
    solution = np.arange(mesh.n_cells, dtype=float)
    mu = np.linspace(0.0, 1.0, len(mesh.points))

    path = tmp_path / "test_dg.vtu"
    with ExportSink(path) as sink:
        sink.add_mesh(mesh, "test_mesh")
        sink.add_zonal_variable("test_mesh", "solution", solution)
        sink.add_nodal_variable("test_mesh", "mu", mu)
    assert path.exists()

    back = meshio.read(path)
    assert_allclose(back.points[:, :2], mesh.points)
    assert back.cells[0].type == "quad"
    assert back.cells[0].data.tolist() == [list(c.point_ids) for c in mesh.cells]
    assert_allclose(back.cell_data["solution"][0], solution)
    assert_allclose(back.point_data["mu"], mu)


def test_default_suffix_and_dtype(tmp_path):
    pts, cells = structured_triangles(1.0, 1.0, nx_quads=1, ny_quads=1)
    mesh = TriangularMesh(pts.astype(np.float32), cells)
    sink = ExportSink(tmp_path / "archive")
    assert sink.path.suffix == ".vtu"
    sink.add_mesh(mesh, "test_mesh")
    assert sink._meshes["test_mesh"].points.dtype == np.float32
    sink.close()
    assert (tmp_path / "archive.vtu").exists()


def test_failed_with_block_writes_nothing(tmp_path, tri_mesh):
    path = tmp_path / "partial.vtu"
    with pytest.raises(KeyError):
        with ExportSink(path) as sink:
            sink.add_mesh(tri_mesh, "test_mesh")
            raise KeyError("solution")
    assert not path.exists()
    with pytest.raises(RuntimeError):
        sink.add_zonal_variable("test_mesh", "solution", np.zeros(tri_mesh.n_cells))
    sink.close()
    assert not path.exists()
