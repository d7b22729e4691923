"""
Module `ingestion.sensorspec` defines the SensorSpec class, which encapsulates
collection metadata (band mappings, scale factors, resolution and mask
strategy) and provides band preparation, cloud masking and formula evaluation.
"""

import json
from pathlib import Path
from typing import Optional

import ee

from .indices import compute_index
from .mask import mask_clouds, mask_score


class SensorSpec:
    """
    Holds metadata for a collection (bands, scale factors, mask method).
    """

    _registry: Optional[dict] = None

    def __init__(
        self,
        collection_id: str,
        bands: dict,
        native_resolution: int,
        cloud_mask_method: str = "none",
        reflectance_scale: float | None = None,
        thermal_bands: dict | None = None,
        thermal_scale: float = 1.0,
        thermal_offset: float = 0.0,
        qa_bands: list[str] | None = None,
        qa_exclude_bits: list[int] | None = None,
    ):
        self.collection_id = collection_id
        # alias -> source band name, e.g. {"nir": "B5"}
        self.bands = bands
        self.native_resolution = native_resolution
        self.cloud_mask_method = cloud_mask_method
        self.reflectance_scale = reflectance_scale
        self.thermal_bands = thermal_bands or {}
        self.thermal_scale = thermal_scale
        self.thermal_offset = thermal_offset
        self.qa_bands = qa_bands or []
        # Cloud shadow and cloud bits of pixel_qa
        self.qa_exclude_bits = qa_exclude_bits or [3, 5]

    @property
    def output_bands(self) -> list[str]:
        """Band names produced by :meth:`prepare`, in order."""
        return list(self.bands) + list(self.thermal_bands) + list(self.qa_bands)

    def prepare(self, img: ee.Image) -> ee.Image:
        """
        Rename bands to their aliases and apply scale factors.

        Reflectance bands are multiplied by ``reflectance_scale``; thermal
        bands are converted with ``thermal_scale`` and ``thermal_offset``
        (Kelvin to degrees C for Landsat 8). QA bands pass through. The
        image properties are preserved.
        """
        main = img.select(list(self.bands.values()), list(self.bands.keys()))
        if self.reflectance_scale is not None:
            main = main.multiply(self.reflectance_scale)
        # select() keeps the image properties, arithmetic does not
        out = img.select(self.qa_bands).addBands(main)
        if self.thermal_bands:
            thermal = (
                img.select(
                    list(self.thermal_bands.values()), list(self.thermal_bands.keys())
                )
                .multiply(self.thermal_scale)
                .add(self.thermal_offset)
            )
            out = out.addBands(thermal)
        return out.select(self.output_bands)

    def cloud_mask(self, img: ee.Image) -> ee.Image:
        """
        Apply the cloud mask named by cloud_mask_method.
        Supports 'pixel_qa', 'pixel_qa_score' and 'none'.
        """
        method = self.cloud_mask_method.lower()
        if method == "pixel_qa":
            return mask_clouds(img, bits=self.qa_exclude_bits)
        if method == "pixel_qa_score":
            return mask_score(mask_clouds(img, bits=self.qa_exclude_bits))
        if method == "none":
            return img
        raise ValueError(f"Unknown cloud mask method '{self.cloud_mask_method}'")

    def compute_index(self, img: ee.Image, index_name: str) -> ee.Image:
        """
        Compute a registry formula on an image prepared by this sensor.
        """
        return compute_index(img, index_name)

    @classmethod
    def _load_registry(cls) -> dict:
        """Load sensor specs from resources/sensor_specs.json."""
        if cls._registry is None:
            base = Path(__file__).resolve().parent.parent
            spec_file = base / "resources" / "sensor_specs.json"
            with open(spec_file, "r", encoding="utf-8") as f:
                cls._registry = json.load(f)
        return cls._registry

    @classmethod
    def from_collection_id(cls, collection_id: str) -> "SensorSpec":
        """
        Factory method: create a SensorSpec from a collection ID by reading the registry.
        """
        registry = cls._load_registry()
        spec = registry.get(collection_id)
        if spec is None:
            raise ValueError(
                f"Collection ID '{collection_id}' not found in sensor_specs.json"
            )
        return cls(
            collection_id=collection_id,
            bands=spec["bands"],
            native_resolution=spec["native_resolution"],
            cloud_mask_method=spec.get("cloud_mask_method", "none"),
            reflectance_scale=spec.get("reflectance_scale"),
            thermal_bands=spec.get("thermal_bands"),
            thermal_scale=spec.get("thermal_scale", 1.0),
            thermal_offset=spec.get("thermal_offset", 0.0),
            qa_bands=spec.get("qa_bands"),
            qa_exclude_bits=spec.get("qa_exclude_bits"),
        )
