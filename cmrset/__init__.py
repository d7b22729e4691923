"""cmrset: CMRSET crop coefficient and evapotranspiration tooling for Earth Engine."""

__version__ = "0.1.0"
