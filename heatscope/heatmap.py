"""Bucketization, normalization and rendering of heatmap layers."""
from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Mapping, Sequence, Tuple
import numpy as np
from PIL import Image

from heatscope.series import Distribution, Range


@dataclass
class Display:
    """Color parameters applied when rendering a set of layers."""
    hue: List[int] = field(default_factory=lambda: [21])
    saturation: Tuple[float, float] = (0.0, 0.9)
    value: float = 0.95


def _bucket_size(params) -> float:
    return (params.max - params.min) / params.nbuckets


def bucketize(series: Mapping[int, Distribution], params) -> np.ndarray:
    """
    Spread a series over a grid of ``nsamples`` x ``nbuckets`` cells.

    Row ``i`` holds sample ``base + i``; column ``j`` covers the value range
    ``[min + j * size, min + (j + 1) * size)``. A range contributes its count to
    each bucket it overlaps, in proportion to the overlap. With
    ``weighbyrange`` each contribution is also scaled by the midpoint of the
    overlapped span.
    """
    grid = np.zeros((params.nsamples, params.nbuckets))
    size = _bucket_size(params)
    if size <= 0:
        return grid

    for i in range(params.nsamples):
        ranges = series.get(params.base + i)
        if not ranges:
            continue

        for (low, high), count in ranges:
            if high < params.min or low > params.max:
                continue

            if low == high:
                j = min(int((low - params.min) // size), params.nbuckets - 1)
                weight = low if params.weighbyrange else 1
                grid[i, j] += count * weight
                continue

            lo = max(low, params.min)
            hi = min(high, params.max)
            first = int((lo - params.min) // size)
            last = min(int((hi - params.min) // size), params.nbuckets - 1)

            for j in range(first, last + 1):
                bucket_lo = params.min + j * size
                span_lo = max(lo, bucket_lo)
                span_hi = min(hi, bucket_lo + size)
                overlap = span_hi - span_lo
                if overlap <= 0:
                    continue

                portion = count * overlap / (high - low)
                if params.weighbyrange:
                    portion *= (span_lo + span_hi) / 2
                grid[i, j] += portion

    return grid


def deduct(grid: np.ndarray, other: np.ndarray):
    """Subtract ``other`` from ``grid`` in place."""
    grid -= other


def normalize(grids: Sequence[np.ndarray], params):
    """
    Scale all grids in place to ``[0, 1]`` against one shared maximum.

    Negative cells (possible after deduction) are clamped to zero. Unless
    ``linear`` is set the scale is logarithmic so faint cells stay visible.
    """
    for grid in grids:
        np.clip(grid, 0, None, out=grid)

    peak = max((float(grid.max()) for grid in grids if grid.size), default=0.0)
    if peak <= 0:
        return

    for grid in grids:
        if params.linear:
            grid /= peak
        else:
            np.log1p(grid, out=grid)
            grid /= np.log1p(peak)


def generate(grids: Sequence[np.ndarray], params, display: Display) -> Image.Image:
    """
    Render normalized grids into a ``width`` x ``height`` RGB image.

    Saturation follows the summed intensity of all layers in a cell; hue is
    taken from the layer contributing most to it. Bucket 0 is at the bottom.
    """
    stack = np.stack(grids)
    total = np.clip(stack.sum(axis=0), 0, 1)
    hues = np.asarray(display.hue, dtype=float)[stack.argmax(axis=0)]

    low, high = display.saturation
    saturation = low + (high - low) * total

    xs = np.arange(params.width) * params.nsamples // params.width
    ys = (params.height - 1 - np.arange(params.height)) * params.nbuckets // params.height

    hsv = np.empty((params.height, params.width, 3), dtype=np.uint8)
    hsv[..., 0] = np.round(hues[xs][:, ys].T / 360 * 255)
    hsv[..., 1] = np.round(saturation[xs][:, ys].T * 255)
    hsv[..., 2] = round(display.value * 255)

    image = Image.frombytes("HSV", (params.width, params.height), hsv.tobytes())
    return image.convert("RGB")


def samplerange(x: int, y: int, params) -> Tuple[int, Range]:
    """Map an image coordinate to its sample and value range."""
    x = min(max(x, 0), params.width - 1)
    y = min(max(y, 0), params.height - 1)

    sample = params.base + x * params.nsamples // params.width
    bucket = (params.height - 1 - y) * params.nbuckets // params.height

    size = _bucket_size(params)
    low = params.min + bucket * size
    return sample, (low, low + size)


def encode_png(image: Image.Image) -> bytes:
    """Encode an image as PNG."""
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
