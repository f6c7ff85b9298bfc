"""
Line search statistics, and where they get published.
"""
import abc
from dataclasses import dataclass
from typing import Any, Dict, MutableMapping


@dataclass
class LineSearchCounters:
    """
    num_line_searches: calls to compute()
    num_non_trivial_line_searches: calls that needed at least one interpolation step
    num_failed_line_searches: calls that ended on the recovery step
    num_iterations: interpolation steps summed over all calls
    """

    num_line_searches: int = 0
    num_non_trivial_line_searches: int = 0
    num_failed_line_searches: int = 0
    num_iterations: int = 0

    def reset(self) -> None:
        self.num_line_searches = 0
        self.num_non_trivial_line_searches = 0
        self.num_failed_line_searches = 0
        self.num_iterations = 0

    def as_output(self) -> Dict[str, int]:
        return {
            "Total Number of Line Search Calls": self.num_line_searches,
            "Total Number of Non-trivial Line Searches": self.num_non_trivial_line_searches,
            "Total Number of Failed Line Searches": self.num_failed_line_searches,
            "Total Number of Line Search Inner Iterations": self.num_iterations,
        }


class StatisticsSink(abc.ABC):
    """Somewhere to put the counters at the end of each line search"""

    @abc.abstractmethod
    def publish(self, counters: LineSearchCounters) -> None:
        pass


class ParameterListSink(StatisticsSink):
    """Writes the counters into the "Output" sublist of a parameter list"""

    def __init__(self, params: MutableMapping[str, Any]) -> None:
        self.params = params

    def publish(self, counters: LineSearchCounters) -> None:
        output = self.params.setdefault("Output", {})
        output.update(counters.as_output())
