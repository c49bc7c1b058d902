"""Composition of store snapshots into layered heatmap datasets."""
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple
import logging
import math
import numpy as np

from heatscope import heatmap
from heatscope.heatmap import Display
from heatscope.params import HeatmapParams, Selection
from heatscope.store import StoreSnapshot

logger = logging.getLogger(__name__)

HUE_START = 21
HUE_STEP = 91
EMPTY_HUE = 0
SATURATION = (0.0, 0.9)
VALUE = 0.95


@dataclass
class Composition:
    """A rendered heatmap and the data behind it."""
    base: int
    layers: List[np.ndarray]
    hues: List[int]
    image: bytes
    decomposition: Dict[str, int]


def selected_keys(snapshot: StoreSnapshot, selection: Selection) -> List[str]:
    """Keys to layer, in request order; every known key when vomiting."""
    if selection.selected:
        return list(selection.selected)
    if selection.vomit:
        return snapshot.keys()
    return []


def compose_layers(
    snapshot: StoreSnapshot,
    params: HeatmapParams,
    selection: Selection
) -> Tuple[List[np.ndarray], List[int]]:
    """
    Build the un-normalized layer stack and its hues.

    The first layer is the total with every selected key deducted from it,
    unless ``isolate`` drops it. Each selected key adds a layer unless
    ``exclude`` is set; excluded keys are still deducted from the total.

    Returns:
        (layers, hues), always with at least one layer
    """
    hues = [HUE_START]

    if selection.isolate:
        primary = None
        layers = []
    else:
        primary = heatmap.bucketize(snapshot.total, params)
        layers = [primary]

    done = set()
    for key in selected_keys(snapshot, selection):
        series = snapshot.decomposed.get(key)
        if series is None or key in done:
            continue
        done.add(key)

        layer = heatmap.bucketize(series, params)
        if primary is not None:
            heatmap.deduct(primary, layer)

        if selection.exclude:
            continue

        layers.append(layer)
        hues.append((hues[-1] + HUE_STEP) % 360)

    if selection.isolate:
        hues.pop(0)

    if not layers:
        layers = [heatmap.bucketize({}, params)]
        hues = [EMPTY_HUE]

    return layers, hues


def compose(snapshot: StoreSnapshot, params: HeatmapParams, selection: Selection) -> Composition:
    """Compose, normalize and render one heatmap."""
    layers, hues = compose_layers(snapshot, params, selection)

    heatmap.normalize(layers, params)

    display = Display(hue=hues, saturation=SATURATION, value=VALUE)
    image = heatmap.generate(layers, params, display)

    logger.debug(
        f"Composed {len(layers)} layers for base={params.base} "
        f"nsamples={params.nsamples} hues={hues}"
    )

    return Composition(
        base=params.base,
        layers=layers,
        hues=hues,
        image=heatmap.encode_png(image),
        decomposition=dict(snapshot.presence),
    )


def cell_params(params: HeatmapParams) -> HeatmapParams:
    """Parameters covering exactly the cell under ``(params.x, params.y)``."""
    sample, (low, high) = heatmap.samplerange(params.x, params.y, params)

    return HeatmapParams(
        base=sample,
        min=low,
        max=high,
        nbuckets=1,
        nsamples=1,
    )


def _round(value: float) -> int:
    """Round half up."""
    return int(math.floor(value + 0.5))


def resolve_details(snapshot: StoreSnapshot, cell: HeatmapParams) -> Dict[str, Any]:
    """
    Exact breakdown of one cell.

    Args:
        snapshot: Store snapshot covering ``cell.base``
        cell: Parameters from :func:`cell_params`

    Returns:
        Sample, value range and rounded total; when the total is nonzero, also
        the rounded contribution of every key with at least one unit in the cell
    """
    rval: Dict[str, Any] = {"sample": cell.base, "min": cell.min, "max": cell.max}
    rval["total"] = _round(heatmap.bucketize(snapshot.total, cell)[0][0])

    if rval["total"] != 0:
        decomposition = {}

        for key in snapshot.keys():
            series = snapshot.decomposed[key]
            if cell.base not in series:
                continue

            contribution = heatmap.bucketize(series, cell)[0][0]
            if contribution < 1:
                continue

            decomposition[key] = _round(contribution)

        rval["decomposition"] = decomposition

    return rval
