"""Earth Engine ingestion: sensor metadata, masking and the formula registry."""

from .indices import INDEX_REGISTRY, compute_index, mutate, transform
from .sensorspec import SensorSpec

__all__ = ["INDEX_REGISTRY", "SensorSpec", "compute_index", "mutate", "transform"]
