"""Tests for SensorSpec band preparation and the Landsat cloud masks."""

import numpy as np
import pytest

from cmrset.ingestion.mask import QA_BITS, cloud_score, mask_clouds, mask_score
from cmrset.ingestion.sensorspec import SensorSpec
from conftest import FakeImage


def test_from_collection_id_landsat():
    spec = SensorSpec.from_collection_id("LANDSAT/LC08/C01/T1_SR")
    assert spec.bands["nir"] == "B5"
    assert spec.bands["swir2"] == "B7"
    assert spec.reflectance_scale == pytest.approx(0.0001)
    assert spec.cloud_mask_method == "pixel_qa_score"
    assert spec.qa_exclude_bits == [3, 5]
    assert spec.output_bands[:7] == [
        "ultraBlue", "blue", "green", "red", "nir", "swir1", "swir2"
    ]
    assert spec.output_bands[-3:] == ["sr_aerosol", "pixel_qa", "radsat_qa"]


def test_from_collection_id_era5_has_no_mask():
    spec = SensorSpec.from_collection_id("ECMWF/ERA5_LAND/MONTHLY")
    assert spec.cloud_mask_method == "none"
    assert spec.output_bands == ["potential_evaporation", "total_precipitation"]


def test_from_collection_id_unknown():
    with pytest.raises(ValueError):
        SensorSpec.from_collection_id("NOT/A/COLLECTION")


def test_prepare_scales_and_renames(fake_ee, landsat_raw):
    spec = SensorSpec.from_collection_id("LANDSAT/LC08/C01/T1_SR")
    img = spec.prepare(landsat_raw.first())
    assert list(img.bands) == spec.output_bands
    assert img.bands["nir"][0] == pytest.approx(0.30)
    assert img.bands["blue"][0] == pytest.approx(0.03)
    # Kelvin * 10 to degrees C
    assert img.bands["LST1"][0] == pytest.approx(295.0 - 273.15)
    # QA passes through unscaled
    assert img.bands["pixel_qa"][1] == 352
    assert img.get("system:time_start") == landsat_raw.first().get("system:time_start")


def test_mask_clouds_drops_shadow_and_cloud_bits(fake_ee):
    qa = [322, 322 | (1 << QA_BITS["CLOUD_SHADOW"]), 322 | (1 << QA_BITS["CLOUD"])]
    img = FakeImage({"nir": [0.3, 0.3, 0.3], "pixel_qa": qa})
    out = mask_clouds(img)
    assert out.bands["nir"][0] == pytest.approx(0.3)
    assert np.isnan(out.bands["nir"][1:]).all()


def test_mask_clouds_without_bits_is_identity(fake_ee):
    img = FakeImage({"nir": [0.3], "pixel_qa": [352]})
    assert mask_clouds(img, bits=()) is img


def test_cloud_score_flags_bright_white_pixels(fake_ee):
    img = FakeImage(
        {
            "blue": [0.03, 0.30],
            "green": [0.06, 0.30],
            "red": [0.05, 0.30],
            "nir": [0.30, 0.40],
            "swir1": [0.10, 0.30],
            "swir2": [0.05, 0.25],
        }
    )
    score = cloud_score(img)
    # vegetation: limited by the blue score
    assert score.bands["constant"][0] == pytest.approx((0.03 - 0.1) / 0.2)
    assert score.bands["constant"][1] == pytest.approx(1.0)

    masked = mask_score(img)
    assert masked.bands["nir"][0] == pytest.approx(0.30)
    assert np.isnan(masked.bands["nir"][1])


def test_cloud_mask_pixel_qa_score(fake_ee, landsat_raw):
    """Only the clear vegetation pixel survives QA and score masking."""
    spec = SensorSpec.from_collection_id("LANDSAT/LC08/C01/T1_SR")
    out = spec.cloud_mask(spec.prepare(landsat_raw.first()))
    nir = out.bands["nir"]
    assert nir[0] == pytest.approx(0.30)
    assert np.isnan(nir[1])
    assert np.isnan(nir[2])


def test_cloud_mask_unknown_method(fake_ee):
    spec = SensorSpec("x", {"nir": "B5"}, 30, cloud_mask_method="fmask")
    with pytest.raises(ValueError):
        spec.cloud_mask(FakeImage({"nir": [0.1]}))


def test_sensorspec_compute_index(fake_ee):
    spec = SensorSpec("x", {"nir": "B5", "red": "B4"}, 30)
    img = FakeImage({"nir": [0.3], "red": [0.1]})
    out = spec.compute_index(img, "NDVI")
    assert out.bands["NDVI"][0] == pytest.approx(0.5)
