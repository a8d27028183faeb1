from setuptools import setup, find_packages

setup(
    name="muon_extrap",
    version="0.1.0",
    description="Field-aware extrapolation of reconstructed muon tracks to muon-station surfaces",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.10",
    install_requires=[
        # Runtime dependencies
        "numpy",
        "numba",
        "pandas",
        "matplotlib",
        "scipy",
        "orjson",
    ],
    extras_require={
        # Parquet input/output
        "parquet": [
            "pyarrow",
        ],
        # Developer extras
        "dev": [
            "pytest",
            "black",
            "mypy",
        ],
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            # CLI entry point for running main.py
            "muon-extrap=muon_extrap.main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
