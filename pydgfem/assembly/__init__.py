from .assembler import Assembler
from .local_forms import (FaceBlocks, volume_diffusion, volume_advection_reaction,
                          face_diffusion, face_advection_reaction)

__all__ = ['Assembler', 'FaceBlocks', 'volume_diffusion', 'volume_advection_reaction',
           'face_diffusion', 'face_advection_reaction']
