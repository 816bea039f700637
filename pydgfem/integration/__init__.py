from .quadrature import volume, integrate, integrate_face, line_quadrature, gauss_legendre
__all__ = ['volume', 'integrate', 'integrate_face', 'line_quadrature', 'gauss_legendre']
