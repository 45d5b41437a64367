"""Build script for sanding-planning.

Subpackages are namespace packages (only some carry an __init__.py), so
they are collected with find_namespace_packages. The robot description
under resources/ is resolved relative to the source tree; install in
editable mode to use the bundled sander.
"""

from setuptools import find_namespace_packages, setup

setup(
    name="sanding-planning",
    version="0.1.0",
    description="Collision-aware joint trajectories for a robotic sander over a cylinder",
    packages=find_namespace_packages(include=["sanding_planning", "sanding_planning.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "scipy",
        "pin",
        "pybullet",
        "fire",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "plan-sanding=sanding_planning.scripts.plan_sanding:cli",
        ],
    },
)
