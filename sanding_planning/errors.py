"""Error taxonomy for the sanding planning pipeline.

Fatal conditions (configuration, resolution) propagate to the caller and
abort the run. Non-convergence is a warning: the last iterate is still
usable. Execution connection failures are reported by the pipeline as an
unsuccessful run rather than a crash.
"""


class SandingPlanningError(Exception):
    """Base class for all sanding planning errors."""


class ConfigurationError(SandingPlanningError):
    """World-model inputs are missing or cannot be parsed."""


class ResolutionError(SandingPlanningError):
    """A named kinematic group, link or joint cannot be bound to the world."""


class ExecutionConnectionError(SandingPlanningError):
    """The execution collaborator was unreachable within its connect timeout."""


class ConvergenceWarning(UserWarning):
    """The optimizer stopped without reporting convergence."""
