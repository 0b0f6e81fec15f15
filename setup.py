#!/usr/bin/env python3
from setuptools import setup

setup(
    name="nonlinear-diffusion-fem",
    version="0.1.0",
    description="1D nonlinear diffusion solver (P1 finite elements, Forward Euler) CLI tool",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    py_modules=[
        "diffusion_fem",
        "fem_assembly",
        "fem_errors",
        "nldiffusion",
        "npz_io",
        "plot_from_npz",
        "plots",
    ],
    install_requires=[
        "numpy",
        "scipy",
        "matplotlib",
        "tabulate",
        "tqdm",
        "questionary",
        "termplotlib",
    ],
    entry_points={
        "console_scripts": [
            "nldiffusion=nldiffusion:main",
            "nldiffusion-sim=diffusion_fem:main",
            "nldiffusion-plot=plot_from_npz:main",
        ]
    },
    extras_require={
        "yaml": [
            "pyyaml",
        ],
        "docs": [
            "sphinx>=3.0",
            "sphinx-rtd-theme",
        ],
        "test": [
            "pytest",
            "pyyaml",
        ],
    },
)
