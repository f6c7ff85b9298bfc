"""
A polynomial (quadratic or cubic) line search for nonlinear equation solvers.

Given the previous iterate x_old, held by the outer solver, and a direction d, find a step lambda
so that x_new = x_old + lambda * d sufficiently decreases the merit function
    phi(lambda) = 0.5 * ||F(x_old + lambda * d)||^2
The default step is always tried first. If it fails, successive polynomial models of phi are
minimized, each new step being kept within [min_bound_factor, max_bound_factor] times the last.

References:
    - Section 8.3.1 in C.T. Kelley, "Iterative Methods for Linear and Nonlinear Equations" (1995)
    - Section 6.3.2 and Algorithm 6.3.1 of J. E. Dennis Jr. and R. B. Schnabel, "Numerical Methods
      for Unconstrained Optimization and Nonlinear Equations" (1983)
    - Section 3.4 of J. Nocedal and S. J. Wright, "Numerical Optimization" (1999)
"""
from dataclasses import dataclass, field
import math
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union
import warnings
from torch import Tensor

from pytorch_polyls import interpolation
from pytorch_polyls.counters import LineSearchCounters, ParameterListSink, StatisticsSink
from pytorch_polyls.groups import Group
from pytorch_polyls.line_search_spec import (
    InterpolationType,
    PolynomialLineSearchSpec,
    RecoveryStepType,
    SufficientDecreaseCondition,
)
from pytorch_polyls.merit_function import MeritFunction, SumOfSquares

if TYPE_CHECKING:
    from pytorch_polyls.solvers import NonlinearSolver


class LineSearchWarning(UserWarning):
    """Raise when an error occurs with a Line Search"""


@dataclass(frozen=True)
class GlobalData:
    """
    State shared by everything attached to one nonlinear solve.

    merit_function: used unless the line search parameters name their own
    verbose: print the configuration and every trial step
    """

    merit_function: MeritFunction = field(default_factory=SumOfSquares)
    verbose: bool = False


@dataclass
class LineSearchResult:
    """
    success: False if the recovery step had to be used
    step: the step applied to the new group
    inner_iterations: number of interpolation steps taken
    new_phi: the merit at the new group
    """

    success: bool
    step: float
    inner_iterations: int
    new_phi: float

    def __bool__(self) -> bool:
        return self.success


class Polynomial:
    """
    args:
        - params: Either a "Line Search" parameter list (options in its "Polynomial" sublist) or a
            PolynomialLineSearchSpec. When a parameter list is given and counters are enabled,
            statistics are written back to its "Output" sublist.
        - global_data: Supplies the default merit function and verbosity
        - statistics_sink: Overrides where the counters are published
    """

    def __init__(
        self,
        params: Union[Mapping[str, Any], PolynomialLineSearchSpec, None] = None,
        global_data: Optional[GlobalData] = None,
        statistics_sink: Optional[StatisticsSink] = None,
    ) -> None:
        self.counters = LineSearchCounters()
        self._user_sink = statistics_sink
        self.reset(params if params is not None else {}, global_data)

    def reset(
        self,
        params: Union[Mapping[str, Any], PolynomialLineSearchSpec],
        global_data: Optional[GlobalData] = None,
    ) -> bool:
        """
        Re-read the configuration; raises BadLineSearchSpec if it is invalid. Keeps the current
        global data when none is given. Counters are not cleared.
        """
        if isinstance(params, PolynomialLineSearchSpec):
            spec = params
            sink = self._user_sink
        else:
            spec = PolynomialLineSearchSpec.from_parameter_list(params)
            sink = self._user_sink if self._user_sink is not None else ParameterListSink(params)

        self.spec = spec
        if global_data is not None:
            self.global_data = global_data
        elif not hasattr(self, "global_data"):
            self.global_data = GlobalData()
        self.merit_function = (
            spec.merit_function
            if spec.merit_function is not None
            else self.global_data.merit_function
        )
        self.statistics_sink = sink if spec.use_counters else None

        if self.global_data.verbose:
            self._print_opening_remarks()

        return True

    def compute(
        self,
        new_group: Group,
        step: Optional[float],
        direction: Tensor,
        solver: "NonlinearSolver",
    ) -> LineSearchResult:
        """
        Search along direction from solver.previous_group(). new_group is left at the returned
        step with F computed there. The incoming step is ignored; the search always starts from
        the default step.
        """
        _ = step
        spec = self.spec
        use_counters = spec.use_counters
        if use_counters:
            self.counters.num_line_searches += 1

        old_group = solver.previous_group()
        old_phi = self._compute_phi(old_group)
        old_value = self._compute_value(old_group, old_phi)
        old_slope = 0.0
        if spec.uses_slope:
            old_slope = self.merit_function.slope(direction, old_group)

        n_nonlinear = solver.nonlinear_iteration_index()
        eta = 0.0
        if spec.sufficient_decrease_condition is SufficientDecreaseCondition.ARED_PRED:
            eta = solver.forcing_term()

        step = spec.default_step
        n_iters = 1
        new_phi = math.nan
        failure = None
        if not (math.isfinite(old_phi) and math.isfinite(old_slope)):
            failure = f"non-finite merit ({old_phi}) or slope ({old_slope}) at the old iterate"
            converged = False
        else:
            if spec.uses_slope and old_slope >= 0.0:
                self._warn_bad_slope(old_slope)
            new_phi = self._update_group(new_group, old_group, direction, step)
            new_value = self._compute_value(new_group, new_phi)
            converged = self.check_convergence(
                new_value, old_value, old_slope, step, eta, n_iters, n_nonlinear
            )

        prev_step = None
        prev_phi = None
        while not converged and failure is None:
            self._print_step(n_iters, step, old_phi, new_phi)

            if n_iters > spec.max_iters:
                failure = f"maximum number of iterations ({spec.max_iters}) reached"
                break

            candidate = self._interpolate(
                n_iters, step, new_phi, prev_step, prev_phi, old_phi, old_slope
            )
            prev_step = step
            prev_phi = new_phi
            step = interpolation.clamp(
                candidate, step, spec.min_bound_factor, spec.max_bound_factor
            )

            if step < spec.min_step:
                failure = f"step ({step:.3e}) fell below the minimum step ({spec.min_step})"
                break

            new_phi = self._update_group(new_group, old_group, direction, step)
            new_value = self._compute_value(new_group, new_phi)
            n_iters += 1
            converged = self.check_convergence(
                new_value, old_value, old_slope, step, eta, n_iters, n_nonlinear
            )

        if failure is not None:
            warnings.warn(f"Polynomial line search failed: {failure}!", LineSearchWarning)
            if spec.recovery_step_type is RecoveryStepType.CONSTANT:
                step = spec.recovery_step
            new_phi = self._update_group(new_group, old_group, direction, step)
            message = "(USING RECOVERY STEP!)"
        else:
            message = "(STEP ACCEPTED!)"
        self._print_step(n_iters, step, old_phi, new_phi, message)

        inner_iterations = n_iters - 1
        if use_counters:
            self.counters.num_iterations += inner_iterations
            if inner_iterations > 0:
                self.counters.num_non_trivial_line_searches += 1
            if failure is not None:
                self.counters.num_failed_line_searches += 1
            if self.statistics_sink is not None:
                self.statistics_sink.publish(self.counters)

        return LineSearchResult(
            success=failure is None,
            step=step,
            inner_iterations=inner_iterations,
            new_phi=new_phi,
        )

    def check_convergence(
        self,
        new_value: float,
        old_value: float,
        old_slope: float,
        step: float,
        eta: float,
        n_iters: int,
        n_nonlinear_iters: int,
    ) -> bool:
        """
        n_iters counts trial steps, the default step being 1. In order:
            1. A forced interpolation rejects the default step
            2. Early in the nonlinear solve (n_nonlinear_iters <= max_increase_iter, with
               max_increase_iter > 0) any new_value / old_value < allowed_relative_increase
               is accepted
            3. The sufficient decrease condition:
                Armijo-Goldstein: phi(lambda) <= phi(0) + alpha * lambda * phi'(0)
                Ared/Pred: ||F(x_old + lambda d)|| <= ||F(x_old)|| (1 - alpha (1 - eta))
                None: always
        """
        spec = self.spec
        if n_iters == 1 and spec.force_interpolation:
            return False

        if spec.allow_increase and n_nonlinear_iters <= spec.max_increase_iter:
            if old_value > 0.0 and new_value / old_value < spec.allowed_relative_increase:
                return True

        condition = spec.sufficient_decrease_condition
        if condition is SufficientDecreaseCondition.ARMIJO_GOLDSTEIN:
            return new_value <= old_value + spec.alpha * step * old_slope
        if condition is SufficientDecreaseCondition.ARED_PRED:
            return new_value <= old_value * (1.0 - spec.alpha * (1.0 - eta))

        return True

    def _interpolate(
        self,
        n_iters: int,
        step: float,
        phi: float,
        prev_step: Optional[float],
        prev_phi: Optional[float],
        phi0: float,
        slope: float,
    ) -> float:
        interpolation_type = self.spec.interpolation_type
        max_bound_factor = self.spec.max_bound_factor

        if interpolation_type is InterpolationType.QUADRATIC3:
            if n_iters == 1:
                return 0.5 * step
            return interpolation.quadratic3(
                step, phi, prev_step, prev_phi, phi0, max_bound_factor
            )

        if n_iters == 1 or interpolation_type is InterpolationType.QUADRATIC:
            return interpolation.quadratic(step, phi, phi0, slope, max_bound_factor)

        return interpolation.cubic(
            step, phi, prev_step, prev_phi, phi0, slope, max_bound_factor
        )

    def _update_group(
        self, new_group: Group, old_group: Group, direction: Tensor, step: float
    ) -> float:
        """x_new = x_old + step * d, evaluate F(x_new) and return phi there"""
        new_group.compute_x(old_group, direction, step)
        new_group.compute_f()

        return self._compute_phi(new_group)

    def _compute_phi(self, group: Group) -> float:
        return float(self.merit_function.value(group))

    def _compute_value(self, group: Group, phi: float) -> float:
        """The decrease measure: ||F|| for Ared/Pred, phi otherwise"""
        if self.spec.sufficient_decrease_condition is not SufficientDecreaseCondition.ARED_PRED:
            return phi
        if self.spec.user_norm is not None:
            return float(self.spec.user_norm(group.f))

        return self.merit_function.norm(group.f)

    def _warn_bad_slope(self, slope: float) -> None:
        msg = (
            f"Computed slope ({slope:.3e}) is non-negative; the direction is not a descent "
            "direction and the line search may be unreliable"
        )
        warnings.warn(msg, LineSearchWarning)

    def _print_step(
        self, n_iters: int, step: float, old_phi: float, new_phi: float, message: str = ""
    ) -> None:
        if not self.global_data.verbose:
            return
        line = f"{n_iters:3d}: step = {step:.3e} old f = {old_phi:.3e} new f = {new_phi:.3e}"
        if message:
            line = f"{line} {message}"
        print(line)

    def _print_opening_remarks(self) -> None:
        spec = self.spec
        print("-- Polynomial Line Search --")
        print(f"  Interpolation Type: {spec.interpolation_type.value}")
        print(f"  Sufficient Decrease Condition: {spec.sufficient_decrease_condition.value}")
        print(f"  Default Step: {spec.default_step}, Minimum Step: {spec.min_step}")
        print(
            f"  Bounds Factors: [{spec.min_bound_factor}, {spec.max_bound_factor}], "
            f"Max Iters: {spec.max_iters}"
        )
        if spec.force_interpolation:
            print("  Forcing at least one interpolation step")
        if spec.allow_increase:
            print(
                f"  Allowing a relative increase of {spec.allowed_relative_increase} up to "
                f"nonlinear iteration {spec.max_increase_iter}"
            )
