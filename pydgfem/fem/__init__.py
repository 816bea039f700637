from .basis import scalar_basis_size, make_basis, ScaledMonomialBasis
from .reference import get_reference
__all__ = ['scalar_basis_size', 'make_basis', 'ScaledMonomialBasis', 'get_reference']
