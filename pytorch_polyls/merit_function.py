"""
Merit functions measure the "goodness" of a group. The line search minimizes
    phi(lambda) = merit(x_old + lambda * d)
"""
import abc
import torch
from torch import Tensor

from pytorch_polyls.groups import Group
from pytorch_polyls.slope import compute_slope


class MeritFunction(abc.ABC):
    """
    A user merit function. value() and slope() must agree: slope(d, grp) is the derivative of
    value() along d at grp.
    """

    @abc.abstractmethod
    def value(self, group: Group) -> float:
        """The merit at group; F has already been computed"""

    @abc.abstractmethod
    def slope(self, direction: Tensor, group: Group) -> float:
        """The directional derivative of value() at group along direction"""

    def norm(self, f: Tensor) -> float:
        return torch.linalg.vector_norm(f).item()


class SumOfSquares(MeritFunction):
    """phi = 0.5 * ||F||^2"""

    def value(self, group: Group) -> float:
        norm_f = group.norm_f()
        return 0.5 * norm_f * norm_f

    def slope(self, direction: Tensor, group: Group) -> float:
        return compute_slope(direction, group)
