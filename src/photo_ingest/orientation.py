"""Apply EXIF orientation codes to decoded rasters."""

from __future__ import annotations

from PIL import Image

Transpose = Image.Transpose

# Pillow's ROTATE_* constants turn counter-clockwise, so a clockwise quarter
# turn is ROTATE_270.
_ORIENTATION_STEPS: dict[int, tuple[Image.Transpose, ...]] = {
    2: (Transpose.FLIP_LEFT_RIGHT,),
    3: (Transpose.ROTATE_180,),
    4: (Transpose.FLIP_TOP_BOTTOM,),
    5: (Transpose.ROTATE_90, Transpose.FLIP_LEFT_RIGHT),
    6: (Transpose.ROTATE_270,),
    7: (Transpose.ROTATE_270, Transpose.FLIP_LEFT_RIGHT),
    8: (Transpose.ROTATE_90,),
}


def apply_orientation(raster: Image.Image, orientation: int | None) -> Image.Image:
    """Return ``raster`` transformed for the given EXIF orientation code.

    Codes ``1``, ``None`` and anything outside 1-8 return the input object
    unchanged.
    """

    steps = _ORIENTATION_STEPS.get(orientation) if orientation is not None else None
    if not steps:
        return raster

    result = raster
    for step in steps:
        result = result.transpose(step)
    return result


__all__ = ["apply_orientation"]
