"""pydgfem.assembly.assembler
Global DG system accumulator.

Local blocks are scattered as (row, col, value) triplets and turned into a
CSR matrix once, at :meth:`Assembler.finalize`, with duplicates summed.  The
DOF of basis function ``i`` on cell ``c`` is ``offset(c) * B + i``.
"""
import logging
from typing import List, Optional

import numpy as np
import scipy.sparse as sp

from pydgfem.fem.basis import scalar_basis_size

logger = logging.getLogger(__name__)

PC_DIAGONAL_MIN = 1e-2


class Assembler:
    """
    Triplet-based assembler with an optional Jacobi preconditioner.

    The diagonal used by the preconditioner is collected from the self-blocks
    (``cell_a is cell_b``) as they are assembled.  ``finalize`` is terminal:
    afterwards ``lhs``, ``rhs`` and ``pc`` are read-only results and any
    further assembly raises.
    """

    def __init__(self, mesh=None, degree: Optional[int] = None, build_pc: bool = False):
        self.lhs: Optional[sp.csr_matrix] = None
        self.rhs: Optional[np.ndarray] = None
        self.pc: Optional[sp.csr_matrix] = None
        self.basis_size = 0
        self.build_pc = bool(build_pc)
        self._pc_temp: Optional[np.ndarray] = None
        self._rows: List[np.ndarray] = []
        self._cols: List[np.ndarray] = []
        self._data: List[np.ndarray] = []
        self._n = 0
        self._state = "new"
        if mesh is not None:
            if degree is None:
                raise ValueError("degree is required when a mesh is given")
            self.initialize(mesh, degree, build_pc)

    # ------------------------------------------------------------------
    def initialize(self, mesh, degree: int, build_pc: bool = False):
        if self._state == "finalized":
            raise RuntimeError("Assembler in invalid state")
        self.basis_size = scalar_basis_size(degree, 2)
        self._n = self.basis_size * len(mesh.cells)
        self.build_pc = bool(build_pc)
        self.rhs = np.zeros(self._n)
        self._pc_temp = np.zeros(self._n) if self.build_pc else None
        self._rows, self._cols, self._data = [], [], []
        self._state = "assembling"
        logger.debug("Assembler initialised: B=%d, N=%d, pc=%s", self.basis_size, self._n, self.build_pc)

    def system_size(self) -> int:
        return self._n

    @property
    def is_finalized(self) -> bool:
        return self._state == "finalized"

    def _check_block(self, block, ndim=2):
        if self._state != "assembling":
            raise RuntimeError("Assembler in invalid state")
        block = np.asarray(block, dtype=float)
        B = self.basis_size
        expected = (B, B) if ndim == 2 else (B,)
        if block.shape != expected:
            raise ValueError(f"Local block has shape {block.shape}, expected {expected}")
        return block

    def _dofs(self, mesh, cell) -> np.ndarray:
        return mesh.offset(cell) * self.basis_size + np.arange(self.basis_size)

    # ------------------------------------------------------------------
    def assemble_face(self, mesh, cell_a, cell_b, block):
        """Scatter a ``B×B`` block coupling the rows of ``cell_a`` to the columns of ``cell_b``."""
        block = self._check_block(block)
        rows = self._dofs(mesh, cell_a)
        cols = self._dofs(mesh, cell_b)
        rr, cc = np.meshgrid(rows, cols, indexing='ij')
        self._rows.append(rr.ravel())
        self._cols.append(cc.ravel())
        self._data.append(block.ravel())
        if self.build_pc and mesh.offset(cell_a) == mesh.offset(cell_b):
            self._pc_temp[rows] += np.diag(block)

    def assemble_cell(self, mesh, cell, K, loc_rhs):
        """Scatter the volume block of ``cell`` and set its slice of the right-hand side."""
        loc_rhs = self._check_block(loc_rhs, ndim=1)
        self.assemble_face(mesh, cell, cell, K)
        self.rhs[self._dofs(mesh, cell)] = loc_rhs

    # ------------------------------------------------------------------
    def finalize(self):
        if self._state != "assembling":
            raise RuntimeError("Assembler in invalid state")
        n = self._n
        if self._data:
            rows = np.concatenate(self._rows)
            cols = np.concatenate(self._cols)
            data = np.concatenate(self._data)
        else:
            rows = cols = np.empty(0, dtype=int)
            data = np.empty(0)
        self.lhs = sp.csr_matrix((data, (rows, cols)), shape=(n, n))   # duplicates are summed
        self._rows, self._cols, self._data = [], [], []
        self._state = "finalized"

        if self.build_pc:
            bad = np.flatnonzero(np.abs(self._pc_temp) <= PC_DIAGONAL_MIN)
            if bad.size:
                raise RuntimeError(f"Near-zero diagonal entries at DOFs {bad[:10].tolist()}"
                                   f"{' ...' if bad.size > 10 else ''}; Jacobi preconditioner unusable.")
            self.pc = sp.diags(1.0 / self._pc_temp, format='csr')
            self._pc_temp = None

        logger.info("System assembled: N=%d, nnz=%d", n, self.lhs.nnz)
        return self.lhs, self.rhs
