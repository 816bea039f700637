from .mesh import Mesh, TriangularMesh, QuadMesh
from .topology import Edge, Element
__all__=['Mesh','TriangularMesh','QuadMesh','Edge','Element']
