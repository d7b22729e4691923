"""Pixel quality masks for Landsat 8 surface reflectance images."""

import ee

# Bit positions in the Collection 1 SR pixel_qa band
QA_BITS = {
    "CLOUD_SHADOW": 3,
    "CLOUD": 5,
}

# Pixels scoring above this are treated as cloud by mask_score
SCORE_THRESHOLD = 0.6


def mask_clouds(
    img: ee.Image, qa_band: str = "pixel_qa", bits=tuple(QA_BITS.values())
) -> ee.Image:
    """
    Keep only pixels where none of the given QA bits are set.
    """
    qa = img.select(qa_band)
    valid = None
    for bit in bits:
        clear = qa.bitwiseAnd(1 << bit).eq(0)
        valid = clear if valid is None else valid.And(clear)
    if valid is None:
        return img
    return img.updateMask(valid)


def cloud_score(img: ee.Image) -> ee.Image:
    """
    Cloud score as the minimum of blue, visible, infrared and snow scores.

    Expects reflectance bands already renamed and scaled (see
    SensorSpec.prepare). Brighter, whiter and less snow-like pixels score
    higher.
    """
    blue_score = img.expression('(b("blue") - 0.1) / 0.2')
    rgb_score = img.expression('((b("red") + b("blue") + b("green")) - 0.2) / 0.6')
    ir_score = img.expression('((b("nir") + b("swir1") + b("swir2")) - 0.3) / 0.5')
    ndsi = img.expression('(b("green") - b("swir1")) / (b("green") + b("swir1"))')
    ndsi_score = img.expression("(NDSI - 0.8) / (-0.2)", {"NDSI": ndsi})
    return blue_score.min(rgb_score).min(ir_score).min(ndsi_score)


def mask_score(img: ee.Image, threshold: float = SCORE_THRESHOLD) -> ee.Image:
    """Mask pixels whose cloud score exceeds *threshold*."""
    cloudy = cloud_score(img).gt(threshold)
    return img.updateMask(cloudy.eq(0))
