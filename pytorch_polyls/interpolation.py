"""
Polynomial models of phi(lambda) used to pick the next trial step, and the safeguard that keeps
each new step within a fixed fraction of the previous one.

Notation: phi0 = phi(0), slope = phi'(0), (step, phi) the most recent trial and
(prev_step, prev_phi) the one before it.
"""
import math


def _safe_step(candidate: float, step: float, max_bound_factor: float) -> float:
    # degenerate models shrink by the largest permitted factor
    if math.isfinite(candidate):
        return candidate
    return max_bound_factor * step


def quadratic(
    step: float, phi: float, phi0: float, slope: float, max_bound_factor: float
) -> float:
    """
    Minimizer of the quadratic interpolating phi(0), phi'(0) and phi(step):
        lambda = -phi'(0) step^2 / (2 (phi(step) - phi(0) - phi'(0) step))
    """
    denom = 2.0 * (phi - phi0 - slope * step)
    if denom == 0.0 or not math.isfinite(denom):
        return max_bound_factor * step

    return _safe_step(-slope * step * step / denom, step, max_bound_factor)


def cubic(
    step: float,
    phi: float,
    prev_step: float,
    prev_phi: float,
    phi0: float,
    slope: float,
    max_bound_factor: float,
) -> float:
    """
    Minimizer of the cubic a l^3 + b l^2 + phi'(0) l + phi(0) through phi(step) and
    phi(prev_step). Falls back to the quadratic model when the cubic has no local minimizer.
    """
    span = step - prev_step
    if span == 0.0 or step == 0.0 or prev_step == 0.0:
        return max_bound_factor * step

    term1 = (phi - phi0 - slope * step) / (step * step)
    term2 = (prev_phi - phi0 - slope * prev_step) / (prev_step * prev_step)
    a = (term1 - term2) / span
    b = (-prev_step * term1 + step * term2) / span
    if not (math.isfinite(a) and math.isfinite(b)):
        return max_bound_factor * step

    disc = b * b - 3.0 * a * slope
    if a == 0.0 or disc < 0.0:
        return quadratic(step, phi, phi0, slope, max_bound_factor)

    root = math.sqrt(disc)
    if b > 0.0:
        # same root, without the cancellation in -b + sqrt(disc)
        denom = b + root
        if denom == 0.0:
            return max_bound_factor * step
        candidate = -slope / denom
    else:
        candidate = (-b + root) / (3.0 * a)

    return _safe_step(candidate, step, max_bound_factor)


def quadratic3(
    step: float,
    phi: float,
    prev_step: float,
    prev_phi: float,
    phi0: float,
    max_bound_factor: float,
) -> float:
    """
    Minimizer of the quadratic through phi(0), phi(prev_step) and phi(step); no slope needed.
    """
    dphi = phi - phi0
    prev_dphi = prev_phi - phi0
    num = step * step * prev_dphi - prev_step * prev_step * dphi
    denom = prev_step * dphi - step * prev_dphi
    if denom == 0.0 or not math.isfinite(denom):
        return max_bound_factor * step

    return _safe_step(-0.5 * num / denom, step, max_bound_factor)


def clamp(
    candidate: float, step: float, min_bound_factor: float, max_bound_factor: float
) -> float:
    """min_bound_factor * step <= lambda <= max_bound_factor * step"""
    return max(min_bound_factor * step, min(max_bound_factor * step, candidate))
