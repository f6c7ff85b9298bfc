"""
Directional derivative of the merit function 0.5 * ||F(x)||^2 along a search direction d:
    phi'(0) = F(x)^T J(x) d
"""
import torch
from torch import Tensor

from pytorch_polyls.groups import Group


def compute_slope(direction: Tensor, group: Group) -> float:
    """
    Uses, in order of preference, the Jacobian-vector product J d, the merit gradient J^T F, and
    finally a finite difference of F along d. group is never modified.
    """
    if not group.is_f:
        raise ValueError("F must be computed for the group before its slope is requested!")

    if group.has_jacobian:
        jd = group.compute_jacobian_vector(direction)
        return torch.dot(group.f, jd).item()

    if group.has_gradient:
        gradient = group.compute_gradient()
        return torch.dot(gradient, direction).item()

    return compute_slope_without_jacobian(direction, group)


def compute_slope_without_jacobian(
    direction: Tensor, group: Group, eta: float = 1.0e-6
) -> float:
    """
    Approximates J d by the forward difference
        J d ~= (1/delta)(F(x + delta * d) - F(x))
    on a scratch copy of group.
    """
    dir_norm = torch.linalg.vector_norm(direction).item()
    x_norm = torch.linalg.vector_norm(group.x).item()
    if dir_norm == 0.0:
        delta = eta
    elif x_norm == 0.0:
        delta = eta / dir_norm
    else:
        delta = eta * x_norm / dir_norm

    scratch = group.clone()
    scratch.compute_x(group, direction, delta)
    f_perturbed = scratch.compute_f()
    jd = torch.div(torch.sub(f_perturbed, group.f), delta)

    return torch.dot(group.f, jd).item()
