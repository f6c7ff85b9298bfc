"""
Nonlinear solvers that drive the polynomial line search. NonlinearSolver is the interface the
line search consumes; Newton is a small dense implementation of it.
"""
import abc
from dataclasses import dataclass
from typing import Callable, List, Optional
import warnings
import torch
from torch import Tensor
from torch.autograd.functional import jacobian

from pytorch_polyls.groups import Group, ResidualGroup
from pytorch_polyls.polynomial import Polynomial


class NewtonWarning(RuntimeWarning):
    """
    Something went wrong in the Newton method that's recoverable
    """


class NonlinearSolver(abc.ABC):
    """
    What a line search may ask of the solver calling it.
    """

    @abc.abstractmethod
    def previous_group(self) -> Group:
        """The group the current direction was computed at"""

    @abc.abstractmethod
    def nonlinear_iteration_index(self) -> int:
        """Number of completed nonlinear iterations"""

    def forcing_term(self) -> float:
        """eta, the relative tolerance the direction was solved to"""
        return 0.0


@dataclass
class NewtonStep:
    iteration: int
    step: float
    success: bool
    inner_iterations: int
    norm_f: float


class Newton(NonlinearSolver):
    """
    Newton's method for F(x) = 0 with a dense Jacobian, globalized by a polynomial line search.

    args:
        - residual: F, written in differentiable torch operations
        - line_search: the line search; a default Polynomial() if None
        - max_newton: The maximum number of Newton iterations per solve
        - abs_newton_tol: converged once ||F|| <= abs_newton_tol
        - rel_newton_tol: converged once ||F|| <= rel_newton_tol * ||F(x0)||
        - forcing_term: the eta reported to the line search for Ared/Pred
        - verbose: print ||F|| and the step each iteration
    """

    def __init__(
        self,
        residual: Callable[[Tensor], Tensor],
        line_search: Optional[Polynomial] = None,
        max_newton: int = 20,
        abs_newton_tol: float = 1.0e-10,
        rel_newton_tol: float = 1.0e-8,
        forcing_term: float = 0.0,
        verbose: bool = False,
    ) -> None:
        if max_newton < 1:
            raise ValueError(f"Max Newton ({max_newton}) must be > 0!")
        if abs_newton_tol < 0.0:
            raise ValueError(f"Absolute Newton Tolerance ({abs_newton_tol}) must be >= 0!")
        if rel_newton_tol < 0.0:
            raise ValueError(f"Relative Newton Tolerance ({rel_newton_tol}) must be >= 0!")
        if not 0.0 <= forcing_term < 1.0:
            raise ValueError(f"Forcing term ({forcing_term}) must be in [0.0, 1.0)!")

        self.residual = residual
        self.line_search = line_search if line_search is not None else Polynomial()
        self.max_newton = max_newton
        self.abs_newton_tol = abs_newton_tol
        self.rel_newton_tol = rel_newton_tol
        self.eta = forcing_term
        self.verbose = verbose

        self.group: Optional[Group] = None
        self.history: List[NewtonStep] = []
        self.converged = False
        self._old_group: Optional[Group] = None
        self._iteration = 0

    def __call__(self, x0: Tensor) -> Tensor:
        return self.solve(x0)

    def previous_group(self) -> Group:
        return self._old_group

    def nonlinear_iteration_index(self) -> int:
        return self._iteration

    def forcing_term(self) -> float:
        return self.eta

    def _converged(self, norm_f: float, original_norm_f: float) -> bool:
        return norm_f <= self.abs_newton_tol or norm_f <= self.rel_newton_tol * original_norm_f

    def _newton_direction(self, group: Group) -> Tensor:
        """Solve J d = -F; steepest descent on 0.5 * ||F||^2 if that fails"""
        try:
            J = jacobian(self.residual, group.x)
            d = torch.linalg.solve(J, -group.f)
        except torch.linalg.LinAlgError:
            d = None

        if d is None or not torch.isfinite(d).all():
            warnings.warn(
                "Newton system could not be solved, taking a steepest descent step instead.",
                NewtonWarning,
            )
            d = -group.compute_gradient()

        return d

    def solve(self, x0: Tensor) -> Tensor:
        group = ResidualGroup(self.residual, x0)
        group.compute_f()
        original_norm_f = group.norm_f()
        self.history = []
        self.converged = self._converged(original_norm_f, original_norm_f)

        self._iteration = 0
        while not self.converged and self._iteration < self.max_newton:
            direction = self._newton_direction(group)

            self._old_group = group
            new_group = group.clone()
            result = self.line_search.compute(new_group, None, direction, self)
            group = new_group

            norm_f = group.norm_f()
            self.history.append(
                NewtonStep(
                    iteration=self._iteration,
                    step=result.step,
                    success=result.success,
                    inner_iterations=result.inner_iterations,
                    norm_f=norm_f,
                )
            )
            if self.verbose:
                print(f"Newton {self._iteration:3d}: ||F|| = {norm_f:.3e}, step = {result.step:.3e}")

            self._iteration += 1
            self.converged = self._converged(norm_f, original_norm_f)

        self.group = group
        self._old_group = None

        return group.x
