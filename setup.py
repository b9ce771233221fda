#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Setup script for SlurmTunnel
"""

from setuptools import setup, find_packages

# Read the README file
def read_readme():
    with open("README.md", "r", encoding="utf-8") as f:
        return f.read()

# Runtime dependencies
def read_requirements():
    """Return the runtime dependencies"""
    return [
        "pyyaml>=5.4.0",
        "dacite>=1.6.0",
        "loguru>=0.6.0",
        "typer>=0.9.0",
        "rich>=12.0.0",
    ]

# Get version from version.py
def get_version():
    """Extract version from the package version module"""
    try:
        with open("src/slurmtunnel/version.py", "r") as f:
            for line in f:
                if line.startswith("__version__"):
                    return line.split("=")[1].strip().strip('"\'')
    except FileNotFoundError:
        pass
    return "0.1.0"

# Main setup configuration
setup(
    name="SlurmTunnel",
    version=get_version(),
    author="slurmtunnel contributors",
    description="On-demand Slurm allocations behind a plain ssh alias",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Distributed Computing",
        "Topic :: System :: Systems Administration",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "black>=21.0",
            "flake8>=3.8",
            "mypy>=0.812",
        ],
    },
    entry_points={
        "console_scripts": [
            "slurmtunnel=slurmtunnel.cli:main",
            "slurmtunnel-ssh=slurmtunnel.cli:ssh_main",
        ],
    },
    keywords="slurm ssh salloc srun vscode remote hpc",
    include_package_data=True,
    zip_safe=False,
)
