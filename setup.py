"""
Setup script for sptensor

Pure-Python package under src/. The version is read from
src/sptensor/__init__.py so it is declared in one place.
"""

from pathlib import Path
from setuptools import setup, find_packages


# Read version from src/sptensor/__init__.py
def get_version():
    version_file = Path("src/sptensor/__init__.py")
    if version_file.exists():
        for line in version_file.read_text().splitlines():
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"').strip("'")
    return "0.1.0"


# Read long description from README
def get_long_description():
    readme = Path("README.md")
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


setup(
    name="sptensor",
    version=get_version(),
    description="Generic in-memory sparse tensor storage engine",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.21",
        "scipy>=1.8",
        "ml_dtypes>=0.2",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    zip_safe=True,
)
