from os import path
from typing import Optional

from setuptools import setup

FULLVERSION = "0.1.0"
VERSION = FULLVERSION

write_version = True


def write_version_py(filename: Optional[str] = None) -> None:
    cnt = """\
version = '%s'
short_version = '%s'
"""
    if filename is None:
        filename = path.join(path.dirname(__file__), "polystats", "version.py")

    a = open(filename, "w")
    try:
        a.write(cnt % (FULLVERSION, VERSION))
    finally:
        a.close()


if write_version:
    write_version_py()


with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="polystats",
    version=FULLVERSION,
    description="Per-polygon and per-class pixel statistics of large rasters, computed by streaming tiles",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="The polystats developers",
    license="Apache-2.0",
    packages=[
        "polystats",
        "polystats.interface",
        "polystats.io",
        "polystats.multiproc",
        "polystats.raster",
        "polystats.stats",
        "polystats.vector",
    ],
    package_data={"polystats": ["config.ini"]},
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "rasterio",
        "affine < 3",
        "geopandas >= 0.10.0",
        "shapely >= 2.0",
        "pyproj",
        "pandas",
        "tqdm",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["polystats = polystats.cli:main"]},
    zip_safe=False,
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "License :: OSI Approved :: Apache Software License",
    ],
)
