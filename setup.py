from setuptools import setup, find_packages

setup(
    name="sleep-cycle-toolkit",
    version="0.1.0",
    packages=find_packages(include=["sleep_cycle_toolkit", "sleep_cycle_toolkit.*"]),
    install_requires=[
        "numpy>=1.24.3",
        "pandas>=2.2.3",
        "matplotlib>=3.10.1",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.9",
)
