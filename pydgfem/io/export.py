"""pydgfem.io.export
Mesh/variable archive for visualising DG results.

The sink mirrors a SILO-style database: a mesh is stored as point coordinates
plus a *zonelist* (the 1-based point ids of every zone, following
``mesh.point_ids`` verbatim, with a per-zone shape size and count), and
variables are attached to a named mesh either per zone or per node.  The
data are written through :mod:`meshio` when the sink is closed; the file
format follows the suffix of the path (``.vtu`` when none is given).

A zonal DG "solution" is normally the zeroth basis coefficient of each cell.
It equals the cell mean only because the zeroth function of the scaled
monomial basis is the constant 1; for any other basis it is just a
coefficient.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import meshio
import numpy as np

logger = logging.getLogger(__name__)

_MESHIO_CELL_TYPE = {3: "triangle", 4: "quad"}


@dataclass
class _ArchiveMesh:
    points: np.ndarray
    zonelist: np.ndarray          # 1-based, flattened
    shapesize: List[int]
    shapecounts: List[int]
    zonal: Dict[str, np.ndarray] = field(default_factory=dict)
    nodal: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def n_zones(self) -> int:
        return int(sum(self.shapecounts))


class ExportSink:
    """
    Write-once archive of meshes and their variables.  Leaving a ``with``
    block through an exception discards the archive.

    Usage::

        with ExportSink("out.vtu") as sink:
            sink.add_mesh(mesh, "test_mesh")
            sink.add_zonal_variable("test_mesh", "solution", values)
    """

    def __init__(self, path: Optional[str] = None):
        self.path: Optional[Path] = None
        self._meshes: Dict[str, _ArchiveMesh] = {}
        self._open = False
        self._closed = False
        if path is not None:
            self.create(path)

    def create(self, path) -> "ExportSink":
        if self._open or self._closed:
            raise RuntimeError("Archive already created.")
        path = Path(path)
        if not path.suffix:
            path = path.with_suffix(".vtu")
        self.path = path
        self._open = True
        return self

    def _require_open(self):
        if not self._open:
            raise RuntimeError("Archive is not open.")

    # ------------------------------------------------------------------
    def add_mesh(self, mesh, name: str):
        self._require_open()
        if name in self._meshes:
            raise ValueError(f"Mesh '{name}' already in the archive.")
        zonelist = []
        shapes = []
        for cell in mesh.cells:
            ids = mesh.point_ids(cell)
            zonelist.extend(i + 1 for i in ids)
            shapes.append(len(ids))
        shapesize = sorted(set(shapes))
        if len(shapesize) > 1:
            raise ValueError("Mixed zone shapes are not supported.")
        self._meshes[name] = _ArchiveMesh(
            points=np.array(mesh.points, copy=True),
            zonelist=np.array(zonelist, dtype=np.int64),
            shapesize=shapesize,
            shapecounts=[len(shapes)],
        )
        logger.debug("Archive mesh '%s': %d points, %d zones", name, len(mesh.points), len(shapes))

    def _mesh(self, mesh_name: str) -> _ArchiveMesh:
        self._require_open()
        try:
            return self._meshes[mesh_name]
        except KeyError:
            raise RuntimeError(f"No mesh '{mesh_name}' in the archive; call add_mesh first.")

    def add_zonal_variable(self, mesh_name: str, name: str, values):
        m = self._mesh(mesh_name)
        values = np.asarray(values)
        if values.shape != (m.n_zones,):
            raise ValueError(f"Zonal variable '{name}' has shape {values.shape}, expected ({m.n_zones},)")
        m.zonal[name] = values.copy()

    def add_nodal_variable(self, mesh_name: str, name: str, values):
        m = self._mesh(mesh_name)
        values = np.asarray(values)
        if values.shape != (len(m.points),):
            raise ValueError(f"Nodal variable '{name}' has shape {values.shape}, expected ({len(m.points)},)")
        m.nodal[name] = values.copy()

    # ------------------------------------------------------------------
    def _target(self, index: int, name: str) -> Path:
        if index == 0:
            return self.path
        return self.path.with_name(f"{self.path.stem}_{name}{self.path.suffix}")

    def close(self):
        """Write every mesh and release the archive.  Closing twice is a no-op."""
        if not self._open:
            return
        self._open = False
        self._closed = True
        for index, (name, m) in enumerate(self._meshes.items()):
            size = m.shapesize[0] if m.shapesize else 3
            points_3d = np.pad(m.points, ((0, 0), (0, 1)), constant_values=0)
            cells = [meshio.CellBlock(_MESHIO_CELL_TYPE[size], m.zonelist.reshape(-1, size) - 1)]
            out = meshio.Mesh(
                points_3d,
                cells,
                point_data=dict(m.nodal),
                cell_data={k: [v] for k, v in m.zonal.items()},
            )
            target = self._target(index, name)
            try:
                out.write(str(target))
            except (meshio.ReadError, meshio.WriteError) as exc:
                raise OSError(f"Cannot write archive '{target}': {exc}") from exc
            logger.info("Archive written: %s", target)

    def discard(self):
        """Release the archive without writing anything."""
        if self._open:
            logger.warning("Archive '%s' discarded, nothing written.", self.path)
        self._open = False
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.discard()
        else:
            self.close()
        return False
