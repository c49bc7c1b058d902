"""Per-request heatmap parameters parsed from query strings."""
from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import re

# Upper bounds for the size parameters
MAX_PIXELS = 8192
MAX_BUCKETS = 4096
MAX_SAMPLES = 86400
# Upper bounds for the products of the size parameters
MAX_CELLS = 1 << 20
MAX_AREA = 1 << 24

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_FALSE_FLAGS = ("", "0", "false")


@dataclass
class HeatmapParams:
    """Display bounds and bucketing for one request."""
    height: int = 300
    width: int = 1000
    min: float = 0
    max: float = 100000
    nbuckets: int = 100
    nsamples: int = 60
    base: int = 0
    x: int = 0
    y: int = 0
    weighbyrange: bool = False
    linear: bool = False


@dataclass
class Selection:
    """Which decomposition keys to layer over the total, and how."""
    selected: List[str] = field(default_factory=list)
    isolate: bool = False
    exclude: bool = False
    vomit: bool = False


NUMERIC = ("height", "width", "min", "max", "nbuckets", "nsamples", "base", "x", "y")
BOOLEANS = ("weighbyrange", "linear")
SIZES = {
    "height": MAX_PIXELS,
    "width": MAX_PIXELS,
    "nbuckets": MAX_BUCKETS,
    "nsamples": MAX_SAMPLES,
}


def parse_int(raw: Optional[str]) -> Optional[int]:
    """Leading integer of ``raw`` ("12px" -> 12), or None if there is none."""
    if raw is None:
        return None
    match = _LEADING_INT.match(raw)
    if not match:
        return None
    return int(match.group(1))


def parse_flag(raw: Optional[str]) -> bool:
    """A selection flag is set by any value other than empty, 0 or false."""
    if raw is None:
        return False
    return raw.strip().lower() not in _FALSE_FLAGS


def parse_params(
    query: Mapping[str, str],
    defaults: Optional[HeatmapParams] = None,
    max_samples: int = MAX_SAMPLES
) -> HeatmapParams:
    """
    Build request parameters from a query mapping.

    Unparseable numbers keep their default, sizes below 1 keep their default
    and sizes above the caps are clamped. ``nsamples`` is also clamped to
    ``max_samples``, the retention window. When a bucket grid would exceed
    ``MAX_CELLS`` cells, ``nbuckets`` shrinks to fit; when the image would
    exceed ``MAX_AREA`` pixels, ``height`` shrinks to fit. Booleans are true
    when their integer value is nonzero.
    """
    params = HeatmapParams(**vars(defaults)) if defaults else HeatmapParams()

    for name in NUMERIC:
        value = parse_int(query.get(name))
        if value is None:
            continue

        if name in SIZES:
            if value < 1:
                continue
            value = min(value, SIZES[name])

        setattr(params, name, value)

    for name in BOOLEANS:
        if name in query:
            setattr(params, name, bool(parse_int(query.get(name))))

    params.nsamples = min(params.nsamples, max(max_samples, 1))
    if params.nsamples * params.nbuckets > MAX_CELLS:
        params.nbuckets = max(MAX_CELLS // params.nsamples, 1)
    if params.width * params.height > MAX_AREA:
        params.height = max(MAX_AREA // params.width, 1)

    return params


def parse_selection(query: Mapping[str, str]) -> Selection:
    """Extract the key selection and its modifiers."""
    raw = query.get("selected")
    selected = raw.split(",") if raw else []

    return Selection(
        selected=selected,
        isolate=parse_flag(query.get("isolate")),
        exclude=parse_flag(query.get("exclude")),
        vomit=parse_flag(query.get("vomit")),
    )
