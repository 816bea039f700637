from .l2_error import compute_l2_errors, local_mass_matrix, l2_projection

__all__ = ['compute_l2_errors', 'local_mass_matrix', 'l2_projection']
