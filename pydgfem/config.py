"""pydgfem.config
Run configuration for the DG drivers.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class SolverType(enum.Enum):
    CG = "cg"
    BICGSTAB = "bicgstab"
    QMR = "qmr"
    DIRECT = "direct"


class MeshFamily(enum.Enum):
    TRIANGULAR = "tri"
    QUADRANGULAR = "quad"


class ProblemKind(enum.Enum):
    DIFFUSION = "diffusion"
    ADVECTION_REACTION = "advection"


@dataclass
class DGConfig:
    """Settings shared by the diffusion and advection–reaction drivers."""

    eta: float = 1.0                    # penalty scale / upwind weight
    degree: int = 1                     # polynomial degree k
    ref_levels: int = 4                 # mesher refinement levels
    use_preconditioner: bool = False    # Jacobi PC
    use_upwinding: bool = False         # advection only
    shatter: bool = False               # perturb interior mesh points
    solver: SolverType = SolverType.CG
    mesh_family: MeshFamily = MeshFamily.TRIANGULAR
    verbose: bool = False
    export_path: Optional[str] = None
    samples_path: Optional[str] = None

    def __post_init__(self):
        if self.degree < 1:
            logger.warning("Degree must be positive. Falling back to 1.")
            self.degree = 1
        if self.ref_levels < 0:
            logger.warning("Refinement levels must be non-negative. Falling back to 0.")
            self.ref_levels = 0
        if not self.eta > 0.0:
            raise ValueError(f"eta must be positive, got {self.eta}")
        self.solver = SolverType(self.solver)
        self.mesh_family = MeshFamily(self.mesh_family)

    @property
    def penalty(self) -> float:
        """SIPG penalty ``3 k^2 eta``."""
        return 3.0 * self.degree * self.degree * self.eta
