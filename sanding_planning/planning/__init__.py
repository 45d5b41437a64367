from .export import export_trajectory
from .optimizer import (
    OptimizationRunner,
    OptimizerBase,
    TrustRegionSQP,
    create_optimizer,
    run_optimization,
)
from .problem_builder import build_problem
from .toolpath import make_cylinder_path, samples_per_revolution

__all__ = [
    "make_cylinder_path",
    "samples_per_revolution",
    "build_problem",
    "OptimizerBase",
    "TrustRegionSQP",
    "OptimizationRunner",
    "create_optimizer",
    "run_optimization",
    "export_trajectory",
]
