"""core.config
---------------

Configuration loader/manager for cmrset. Provides a central API for
loading experiment settings from YAML/TOML/JSON and retrieving
them via :py:meth:`ConfigManager.get`.
"""

import os
import json
import copy
import yaml
import toml


class ConfigValidationError(Exception):
    """Raised when configuration loading or validation fails."""


class ConfigManager:
    """
    Loads and manages experiment configuration from file or defaults.
    """

    # Murray-Darling Basin (west, south, east, north)
    DEFAULT_ROI: tuple[float, ...] = (138.525, -37.725, 152.525, -24.575)

    LANDSAT_COLLECTION: str = "LANDSAT/LC08/C01/T1_SR"
    ERA5_COLLECTION: str = "ECMWF/ERA5_LAND/MONTHLY"
    DISTRICT_ASSET: str = (
        "projects/ee-jorgepena/assets/Irrigation_Land_use_NSW_2013/"
        "IIOs_NSW_2013_Land_use_irrigation"
    )

    # Visualisation presets for the SWIR2 minus SWIR1 difference layers
    VIS_PRESETS: dict[str, dict] = {
        "rmi_diff": {
            "min": 0,
            "max": 0.6,
            "palette": ["ffffff", "86a192", "509791", "307296", "2c4484", "000066"],
        },
        "kc_diff": {
            "min": 0,
            "max": 0.6,
            "palette": [
                "FFFFFF", "CE7E45", "DF923D", "F1B555", "FCD163", "99B718",
                "74A901", "66A000", "529400", "3E8601", "207401", "056201",
                "004C00", "023B01", "012E01", "011D01", "011301",
            ],
        },
        "irrest_diff": {
            "min": 0,
            "max": 300,
            "palette": ["white", "beige", "green", "yellow", "red"],
        },
    }

    DEFAULTS: dict = {
        "date_begin": "2014-01-01",
        "date_end": "2018-01-02",
        "years": 4,
        "months": 12,
        "roi": list(DEFAULT_ROI),
        "map_center": [144.3406, -35.4261],
        "map_zoom": 11,
        "landsat_collection": LANDSAT_COLLECTION,
        "era5_collection": ERA5_COLLECTION,
        "district_asset": DISTRICT_ASSET,
        "district_id_field": "Id",
        "district_id": 2,
        "district_name": "IIO Murray Wakool",
        "summer_months": [12, 1, 2],
        "chart_scale": 30,
        "chart_title": "IIO2 Murray Irrigation Wakool (West)",
        "period_label": "2014–2020",
        "figure1": True,
        "figure2": True,
    }

    def __init__(self, config_path=None):
        self.config = copy.deepcopy(self.DEFAULTS)
        self.vis_presets = copy.deepcopy(self.VIS_PRESETS)
        if config_path:
            self.load(config_path)

    def load(self, path: str) -> None:
        """
        Load configuration from a file (YAML, TOML, or JSON).
        Overwrites existing keys in self.config; a ``vis_presets`` table
        is merged into the visualisation presets instead.
        """
        ext = os.path.splitext(path)[1].lower()
        try:
            with open(path, "r", encoding="utf-8") as f:
                if ext in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                elif ext == ".toml":
                    data = toml.load(f)
                elif ext == ".json":
                    data = json.load(f)
                else:
                    raise ConfigValidationError(f"Unsupported config format: {ext}")
        except ConfigValidationError:
            raise
        except Exception as e:
            raise ConfigValidationError(
                f"Failed to load config from {path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise ConfigValidationError(f"Config file {path} did not produce a dict")
        presets = data.pop("vis_presets", None)
        if presets is not None:
            if not isinstance(presets, dict):
                raise ConfigValidationError("vis_presets must be a mapping")
            self.vis_presets.update(presets)
        self.config.update(data)
        self.validate()

    def validate(self) -> None:
        """Check the values the experiment relies on."""
        roi = self.config.get("roi")
        if not isinstance(roi, (list, tuple)) or len(roi) != 4:
            raise ConfigValidationError("roi must be [west, south, east, north]")
        months = self.config.get("summer_months") or []
        if not months or any(int(m) < 1 or int(m) > 12 for m in months):
            raise ConfigValidationError("summer_months must be calendar months 1-12")
        for key in ("years", "months", "chart_scale"):
            if int(self.config.get(key, 0)) <= 0:
                raise ConfigValidationError(f"{key} must be a positive integer")

    def get(self, key, default=None):
        """
        Retrieve a configuration value by key, or return `default` if not present.
        """
        if key in self.config:
            return self.config.get(key, default)
        elif hasattr(self, key):
            return getattr(self, key)
        else:
            return default

    def get_vis(self, name: str) -> dict:
        """Return a copy of the visualisation preset called *name*."""
        if name not in self.vis_presets:
            raise ConfigValidationError(
                f"Unknown visualisation preset '{name}'. "
                f"Choose from: {sorted(self.vis_presets)}"
            )
        return copy.deepcopy(self.vis_presets[name])

    def merge(self, other: "ConfigManager") -> None:
        """
        Merge another ConfigManager into this one.
        Values in other.config override this.config.
        """
        if not isinstance(other, ConfigManager):
            raise TypeError("Can only merge ConfigManager instances")
        self.config.update(other.config)
        self.vis_presets.update(other.vis_presets)

    @property
    def n_months(self) -> int:
        """Number of monthly steps, inclusive of the final month."""
        return int(self.config["years"]) * int(self.config["months"]) + 1
