from .manufactured import Coefficients, ManufacturedProblem, diffusion_problem, advection_reaction_problem
from .driver import (SolverStatus, run_diffusion_solver, run_advection_reaction_solver, run_dg,
                     assemble_diffusion, assemble_advection_reaction, cell_values, sample_solution,
                     export_solution)

__all__ = ['Coefficients', 'ManufacturedProblem', 'diffusion_problem', 'advection_reaction_problem',
           'SolverStatus', 'run_diffusion_solver', 'run_advection_reaction_solver', 'run_dg',
           'assemble_diffusion', 'assemble_advection_reaction', 'cell_values', 'sample_solution',
           'export_solution']
