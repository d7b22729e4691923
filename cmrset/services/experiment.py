"""
CMRSET SWIR1 / SWIR2 comparison over the Murray-Darling Basin.

Landsat 8 actual evapotranspiration from CMRSET (Guerschman et al., 2009)
depends on GVMI, which can be computed from either SWIR1 or SWIR2. This
workflow computes both variants and compares them:

* Figure 1: summer-mean difference of RMI and Kc (SWIR2 minus SWIR1).
* Figure 2: summer-mean difference of the irrigation estimate (Irrest)
  using ERA5-Land potential evaporation and precipitation, plus a time
  series of Irrest from CMRSET, IrriSAT and Kamble over an irrigation
  district.

References: Bretreger et al. (2020), J. Hydrol. 590,
https://doi.org/10.1016/j.jhydrol.2020.125356
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

import ee

from cmrset.analytics.engine import AnalyticsEngine
from cmrset.analytics.join import inner_join
from cmrset.analytics.timeseries import TimeSeries
from cmrset.core.config import ConfigManager
from cmrset.core.logger import Logger
from cmrset.geo.aoi import AOI, district_from_asset, rectangle
from cmrset.ingestion.eemanager import EarthEngineManager, ee_manager
from cmrset.ingestion.indices import mask_positive, mutate, transform
from cmrset.visualization.charts import (
    IRREST_SERIES,
    ChartOptions,
    plot_series_html,
    plot_series_png,
)
from cmrset.visualization.legend import legend_horz
from cmrset.visualization.maps import add_ee_layer, add_legend, build_map, save_map

VEGETATION_INDICES = ["EVI", "NDVI", "GVMI", "GVMI2"]
MONTHLY_BANDS = ["EVI", "GVMI", "GVMI2", "NDVI"]
KC_FORMULAS = [
    "RMI",
    "RMI2",
    "rescaled_evi",
    "PInterception",
    "Kc",
    "Kc2",
    "Kc_kamble",
    "Kc_irrisat",
]
ETA_FORMULAS = [
    "ETa_swir1",
    "ETa_swir2",
    "ETa_kamble",
    "ETa_irrisat",
    "irrest_swir1",
    "irrest_swir2",
    "irrest_irrisat",
    "irrest_kamble",
]
KC_DIFFERENCES = [
    'GVMI = b("GVMI2") - b("GVMI")',
    'RMI = b("RMI2") - b("RMI")',
    'Kc = b("Kc2") - b("Kc")',
]
IRREST_DIFFERENCES = ['irrest = b("irrest_swir2") - b("irrest_swir1")']


@dataclass
class ExperimentResult:
    """Lazy Earth Engine objects built by the workflow, plus written files."""

    landsat: ee.ImageCollection
    indices: ee.ImageCollection
    monthly: ee.ImageCollection
    kc: ee.ImageCollection
    kc_diff: Optional[ee.ImageCollection] = None
    kc_summer: Optional[ee.Image] = None
    era5: Optional[ee.ImageCollection] = None
    eta: Optional[ee.ImageCollection] = None
    irrest_diff: Optional[ee.ImageCollection] = None
    irrest_summer: Optional[ee.Image] = None
    district: Optional[ee.FeatureCollection] = None
    series: Optional[TimeSeries] = None
    outputs: Dict[str, str] = field(default_factory=dict)


class CmrsetExperiment:
    """Builds and renders the SWIR1 / SWIR2 comparison."""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        ee_manager_instance: Optional[EarthEngineManager] = None,
        district_file: Optional[str] = None,
        logger=None,
    ):
        self.config = config or ConfigManager()
        self.ee = ee_manager_instance or ee_manager
        self.district_file = district_file
        self.logger = logger or Logger.get_logger(__name__)

    @property
    def roi(self) -> ee.Geometry:
        return rectangle(self.config.get("roi"))

    def _summer_mean(self, collection: ee.ImageCollection) -> ee.Image:
        months = self.config.get("summer_months")
        return AnalyticsEngine.calendar_month_means(collection, months).mean()

    def district(self) -> ee.FeatureCollection:
        """The irrigation district, from a local vector file or the configured asset."""
        if self.district_file:
            aois = AOI.from_file(self.district_file)
            return ee.FeatureCollection(
                [
                    ee.Feature(a.ee_geometry(), {"id": a.static_props.get("id")})
                    for a in aois
                ]
            )
        return district_from_asset(
            self.config.get("district_asset"),
            self.config.get("district_id_field"),
            self.config.get("district_id"),
        )

    def build_kc(self) -> ExperimentResult:
        """Masked Landsat, vegetation indices, monthly means and crop coefficients."""
        cfg = self.config
        start, end = cfg.get("date_begin"), cfg.get("date_end")
        self.logger.info("Landsat 8 %s..%s over %s", start, end, cfg.get("roi"))
        landsat = self.ee.get_landsat(
            start, end, self.roi, collection_id=cfg.get("landsat_collection")
        )
        indices = landsat.map(mutate(VEGETATION_INDICES))
        monthly = AnalyticsEngine.monthly_means(
            indices, start, cfg.n_months, MONTHLY_BANDS
        )
        kc = monthly.map(mutate(KC_FORMULAS, include_origin=True))
        return ExperimentResult(landsat=landsat, indices=indices, monthly=monthly, kc=kc)

    def build_figure1(self, result: ExperimentResult) -> ExperimentResult:
        """GVMI, RMI and Kc differences (SWIR2 minus SWIR1), positive pixels only."""
        result.kc_diff = result.kc.map(transform(KC_DIFFERENCES, func=mask_positive))
        result.kc_summer = self._summer_mean(result.kc_diff)
        return result

    def build_figure2(self, result: ExperimentResult) -> ExperimentResult:
        """ETa and Irrest from the monthly Kc joined with ERA5-Land."""
        cfg = self.config
        result.era5 = self.ee.get_era5(
            cfg.get("date_begin"),
            cfg.get("date_end"),
            self.roi,
            collection_id=cfg.get("era5_collection"),
        )
        kc_era = inner_join(result.kc, result.era5)
        result.eta = kc_era.map(mutate(ETA_FORMULAS))
        result.irrest_diff = result.eta.map(
            transform(IRREST_DIFFERENCES, func=mask_positive)
        )
        result.irrest_summer = self._summer_mean(result.irrest_diff)
        result.district = self.district()
        return result

    def build(self) -> ExperimentResult:
        """Assemble every enabled figure's Earth Engine graph without fetching data."""
        result = self.build_kc()
        if self.config.get("figure1"):
            self.build_figure1(result)
        if self.config.get("figure2"):
            self.build_figure2(result)
        return result

    def _title(self, what: str, unit: str = "") -> str:
        period = self.config.get("period_label")
        unit = f" ({unit})" if unit else ""
        return (
            f"Mean summer months difference between {what} with SWIR2 "
            f"and {what} with SWIR1{unit} ({period})"
        )

    def render(
        self,
        result: ExperimentResult,
        output_dir: str,
        fetch_series: bool = True,
    ) -> ExperimentResult:
        """Write the map, legends and (optionally) the district chart to *output_dir*."""
        cfg = self.config
        os.makedirs(output_dir, exist_ok=True)
        period = cfg.get("period_label").replace("–", " to ")
        m = build_map(cfg.get("map_center"), cfg.get("map_zoom"))

        layers = []
        if result.kc_summer is not None:
            summer = result.kc_summer
            layers.append(("rmi_diff", "RMI", "", "bottom-left", summer.select("RMI")))
            layers.append(("kc_diff", "Kc", "", "bottom-right", summer.select("Kc")))
        if result.irrest_summer is not None:
            layers.append(
                (
                    "irrest_diff",
                    "Irrest",
                    "mm per month",
                    "bottom-center",
                    result.irrest_summer.select("irrest"),
                )
            )

        for preset, label, unit, position, image in layers:
            vis = cfg.get_vis(preset)
            legend_path = os.path.join(output_dir, f"legend_{preset}.png")
            legend = legend_horz(vis, self._title(label, unit), legend_path, position)
            add_ee_layer(m, image, vis, f"Summer {label} difference ({period})", True)
            add_legend(m, legend)
            result.outputs[f"legend_{preset}"] = legend_path

        if result.district is not None:
            add_ee_layer(
                m,
                result.district,
                {"color": "grey"},
                cfg.get("district_name"),
                shown=True,
                opacity=0.7,
            )
            if fetch_series:
                self._render_series(result, output_dir)

        result.outputs["map"] = save_map(m, os.path.join(output_dir, "map.html"))
        return result

    def _render_series(self, result: ExperimentResult, output_dir: str) -> None:
        cfg = self.config
        bands = list(IRREST_SERIES)
        ts = TimeSeries.from_collection(
            result.eta,
            result.district.geometry(),
            bands,
            self.ee,
            scale=cfg.get("chart_scale"),
        )
        result.series = ts
        csv_path = os.path.join(output_dir, "irrest_series.csv")
        ts.to_csv(csv_path)
        options = ChartOptions(title=cfg.get("chart_title"))
        html_path = os.path.join(output_dir, "irrest_chart.html")
        png_path = os.path.join(output_dir, "irrest_chart.png")
        plot_series_html(ts, html_path, options, IRREST_SERIES)
        plot_series_png(ts, png_path, options, IRREST_SERIES)
        result.outputs.update(
            {"series_csv": csv_path, "chart_html": html_path, "chart_png": png_path}
        )

    def run(self, output_dir: str, fetch_series: bool = True) -> ExperimentResult:
        """Initialise Earth Engine, build the graphs and render every output."""
        self.ee.initialize()
        result = self.build()
        self.render(result, output_dir, fetch_series=fetch_series)
        self.logger.info("Wrote %d outputs to %s", len(result.outputs), output_dir)
        return result


def run_experiment(
    config: Optional[ConfigManager] = None,
    output_dir: str = "cmrset_output",
    ee_manager_instance: Optional[EarthEngineManager] = None,
    district_file: Optional[str] = None,
    fetch_series: bool = True,
) -> ExperimentResult:
    """Run the SWIR1 / SWIR2 comparison and write its outputs to *output_dir*."""
    experiment = CmrsetExperiment(
        config=config,
        ee_manager_instance=ee_manager_instance,
        district_file=district_file,
    )
    return experiment.run(output_dir, fetch_series=fetch_series)
