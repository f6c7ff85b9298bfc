"""
pytorch_polyls: A polynomial line search for nonlinear equation solvers in PyTorch
"""

try:
    import torch
except ModuleNotFoundError as module_error:

    class TorchNotFound(Exception):
        pass

    err_str = (
        "Unable to import Torch. Torch is not currently easy to track as a dependency; "
        "as such, you must install it yourself manually. Please go to https://pytorch.org/ "
        "and select the appropriate version for your platform."
    )
    raise TorchNotFound(err_str) from module_error

__version__ = "0.1.0"

from .counters import LineSearchCounters, ParameterListSink, StatisticsSink
from .groups import Group, GroupError, ResidualGroup
from .line_search_spec import (
    BadLineSearchSpec,
    InterpolationType,
    PolynomialLineSearchSpec,
    RecoveryStepType,
    SufficientDecreaseCondition,
)
from .merit_function import MeritFunction, SumOfSquares
from .polynomial import GlobalData, LineSearchResult, LineSearchWarning, Polynomial
from .solvers import Newton, NewtonStep, NewtonWarning, NonlinearSolver

__all__ = (
    "BadLineSearchSpec",
    "GlobalData",
    "Group",
    "GroupError",
    "InterpolationType",
    "LineSearchCounters",
    "LineSearchResult",
    "LineSearchWarning",
    "MeritFunction",
    "Newton",
    "NewtonStep",
    "NewtonWarning",
    "NonlinearSolver",
    "ParameterListSink",
    "Polynomial",
    "PolynomialLineSearchSpec",
    "RecoveryStepType",
    "ResidualGroup",
    "StatisticsSink",
    "SufficientDecreaseCondition",
    "SumOfSquares",
)
