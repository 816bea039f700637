from .linear_solver import (ConjugateGradientParameters, ConjugateGradientResult, ConvergenceError,
                            TerminationReason, conjugate_gradient, solve_system)

__all__ = ['ConjugateGradientParameters', 'ConjugateGradientResult', 'ConvergenceError',
           'TerminationReason', 'conjugate_gradient', 'solve_system']
