# setup.py
from setuptools import setup, find_packages


def parse_reqs(fname="requirements.txt"):
    with open(fname) as f:
        # strip comments and empty lines
        return [l.strip() for l in f if l.strip() and not l.startswith("#")]


setup(
    name="cmrset",
    version="0.1.0",
    description="CMRSET crop coefficient and ETa comparison tooling for Google Earth Engine",
    package_dir={"cmrset": "cmrset"},
    packages=find_packages(include=["cmrset", "cmrset.*"]),
    install_requires=parse_reqs(),
    extras_require={"test": ["pytest>=7"]},
    package_data={"cmrset": ["resources/*.json"]},
    include_package_data=True,
    python_requires=">=3.10",
    entry_points={"console_scripts": ["cmrset=cmrset.core.cli:cli"]},
)
