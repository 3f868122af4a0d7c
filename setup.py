from __future__ import annotations

from setuptools import find_packages, setup


def load_dependencies() -> list[str]:
    """Assemble install_requires for the tour engine."""
    return [
        # Data handling
        "pydantic>=2.0.0",
        # HTTP itinerary and keyframe sources
        "aiohttp>=3.8.0",
    ]


def load_test_dependencies() -> list[str]:
    return [
        "pytest>=7.4.0",
    ]


setup(
    name="waypoint-tour",
    version="0.1.0",
    description="Cinematic waypoint navigation and narration sync for guided map tours",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=load_dependencies(),
    extras_require={"test": load_test_dependencies()},
    entry_points={
        "console_scripts": [
            "waypoint-tour=waypoint_tour.cli:main",
        ],
    },
)
