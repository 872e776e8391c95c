"""
Setup script for the surfsnap package
"""
from setuptools import setup, find_packages
import sys

# Check Python version
if sys.version_info < (3, 9):
    sys.exit('Python >= 3.9 is required')

# Read README for long description
try:
    with open("README.md", "r", encoding="utf-8") as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = ""

setup(
    name="surfsnap",
    version="0.1.0",
    description="Two-stage marker-controlled watershed that snaps a coarse surface mask onto the nearest strong edge",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["test", "test.*", "examples"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.6.0",
        "scikit-image>=0.19.0",
        "nibabel>=3.2.0",
        "pillow>=8.0.0",
        "tqdm>=4.50.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
        "demo": ["matplotlib>=3.3"],
    },
    entry_points={
        "console_scripts": [
            "mksurf=surfsnap.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Image Processing",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
)
