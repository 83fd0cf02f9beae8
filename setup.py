"""Setup configuration for hostbarrier."""

from setuptools import find_packages, setup

setup(
    name="hostbarrier",
    version="0.1.0",
    description="UDP startup barrier for a fixed set of peer hosts",
    author="hostbarrier developers",
    packages=find_packages(include=["hostbarrier", "hostbarrier.*"]),
    python_requires=">=3.8",
    install_requires=[
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-mock>=3.10.0",
        ],
        "dev": [
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "hostbarrier=hostbarrier.cli:main",
        ],
    },
)
