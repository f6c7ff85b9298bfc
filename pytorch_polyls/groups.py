"""
Groups bundle an iterate x with the residual F(x) evaluated there. The line search only talks to
groups, so the residual may come from anything that maps a Tensor to a Tensor.
"""
import abc
from typing import Callable, Optional
import torch
from torch import Tensor
from torch.autograd.functional import jvp, vjp


class GroupError(RuntimeError):
    """Raised when a group is asked for something it has not computed"""


class Group(abc.ABC):
    """
    An iterate x and (once computed) the residual F(x).

    Subclasses must provide compute_f(); the Jacobian-vector product and the merit gradient are
    optional capabilities advertised through has_jacobian / has_gradient.
    """

    def __init__(self, x: Tensor) -> None:
        self._x = x.clone()
        self._f: Optional[Tensor] = None

    @property
    def x(self) -> Tensor:
        return self._x

    @property
    def f(self) -> Tensor:
        if self._f is None:
            raise GroupError("F has not been computed for the current x!")
        return self._f

    @property
    def is_f(self) -> bool:
        return self._f is not None

    @property
    def has_jacobian(self) -> bool:
        return False

    @property
    def has_gradient(self) -> bool:
        return False

    def set_x(self, x: Tensor) -> None:
        self._x = x.clone()
        self._f = None

    def compute_x(self, old_group: "Group", direction: Tensor, step: float) -> None:
        """x := x_old + step * direction"""
        self._x = torch.add(old_group.x, direction, alpha=step)
        self._f = None

    @abc.abstractmethod
    def compute_f(self) -> Tensor:
        """Evaluate and store F at the current x"""

    def norm_f(self) -> float:
        return torch.linalg.vector_norm(self.f).item()

    def compute_jacobian_vector(self, direction: Tensor) -> Tensor:
        _ = direction
        raise NotImplementedError("This group does not provide a Jacobian-vector product!")

    def compute_gradient(self) -> Tensor:
        raise NotImplementedError("This group does not provide the merit gradient!")

    @abc.abstractmethod
    def clone(self) -> "Group":
        """A copy that shares no mutable state with this group"""


class ResidualGroup(Group):
    """
    A group over a residual callable F: R^n -> R^m. Derivative products come from autograd, so
    residual must be written in differentiable torch operations; set differentiable=False for
    black box residuals (the slope then falls back to finite differences).

    args:
        - residual: the function F
        - x: the iterate
        - differentiable: whether autograd can be used through residual
    """

    def __init__(
        self,
        residual: Callable[[Tensor], Tensor],
        x: Tensor,
        differentiable: bool = True,
    ) -> None:
        super().__init__(x)
        self.residual = residual
        self.differentiable = differentiable
        self.num_f_evals = 0

    @property
    def has_jacobian(self) -> bool:
        return self.differentiable

    @property
    def has_gradient(self) -> bool:
        return self.differentiable

    def compute_f(self) -> Tensor:
        with torch.no_grad():
            fx = self.residual(self._x)
        if not isinstance(fx, Tensor):
            raise GroupError(f"Residual returned {type(fx).__name__}, expected a Tensor!")
        self._f = fx
        self.num_f_evals += 1

        return fx

    def compute_jacobian_vector(self, direction: Tensor) -> Tensor:
        if not self.differentiable:
            return super().compute_jacobian_vector(direction)
        _, jd = jvp(self.residual, self._x, direction)

        return jd

    def compute_gradient(self) -> Tensor:
        """grad(0.5 * ||F||^2) = J^T F"""
        if not self.differentiable:
            return super().compute_gradient()
        _, jtf = vjp(self.residual, self._x, self.f)

        return jtf

    def clone(self) -> "ResidualGroup":
        grp = ResidualGroup(self.residual, self._x, differentiable=self.differentiable)
        if self._f is not None:
            grp._f = self._f.clone()

        return grp
