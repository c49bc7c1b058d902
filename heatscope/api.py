"""HTTP surface for heatmaps, cell details and configuration using FastAPI."""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import base64
import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, Response
from starlette.concurrency import run_in_threadpool

from heatscope.composition import cell_params, compose, resolve_details
from heatscope.config import Config
from heatscope.engine import SamplerEngine
from heatscope.params import HeatmapParams, parse_params, parse_selection
from heatscope.prom_exporter import SelfMetrics
from heatscope.store import AggregationStore

logger = logging.getLogger(__name__)

# Methods other than GET and HEAD are answered with 404
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class HeatmapAPI:
    """FastAPI application serving static assets and composed heatmaps."""

    def __init__(
        self,
        config: Config,
        store: AggregationStore,
        engine: Optional[SamplerEngine] = None,
        metrics: Optional[SelfMetrics] = None,
    ):
        """
        Initialize the API.

        Args:
            config: Active configuration
            store: Aggregation store shared with the sampler
            engine: Sampler to run for the lifetime of the app, if any
            metrics: Self metrics to record request durations in
        """
        self.config = config
        self.store = store
        self.engine = engine
        self.metrics = metrics
        self.static_root = Path(config.server.static_dir).resolve()
        self.start_time = time.time()

        self.app = FastAPI(
            title="heatscope",
            lifespan=self._lifespan,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        self._handlers = {
            "/heatmap": self._heatmap,
            "/details": self._details,
            "/conf": self._conf,
            "/status": self._status,
        }

        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        """Run the sampler alongside the server."""
        if self.engine:
            await self.engine.start()
        yield
        if self.engine:
            await self.engine.stop()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.api_route("/{path:path}", methods=ROUTED_METHODS)
        async def dispatch(path: str, request: Request):
            """Serve a static file if one exists, else a dynamic endpoint."""
            if request.method not in ("GET", "HEAD"):
                return Response(status_code=404)

            static = self._static_file(path)
            if static is not None:
                return FileResponse(static)

            if not path:
                logger.error(f"Index file {self.config.server.index} not found")

            handler = self._handlers.get("/" + path)
            if handler is None:
                return Response(status_code=404)

            return await handler(request)

    def _static_file(self, path: str) -> Optional[Path]:
        """Resolve a request path to a file under the static root."""
        if not path:
            path = self.config.server.index

        candidate = (self.static_root / path).resolve()
        if not candidate.is_relative_to(self.static_root):
            return None
        if not candidate.is_file():
            return None
        return candidate

    def index_path(self) -> Path:
        """Location of the index file."""
        return self.static_root / self.config.server.index

    def _params(self, request: Request) -> HeatmapParams:
        """Request parameters with the configured value range as default."""
        defaults = HeatmapParams(min=self.config.min, max=self.config.max)
        params = parse_params(request.query_params, defaults, max_samples=self.store.window)

        if not params.base:
            latest = self.store.latest_sample
            current = latest if latest is not None else int(time.time())
            params.base = current - params.nsamples

        return params

    async def _heatmap(self, request: Request):
        """Compose the requested layers into an image."""
        started = time.time()
        try:
            params = self._params(request)
            selection = parse_selection(request.query_params)
            snapshot = self.store.snapshot(params.base, params.base + params.nsamples)

            composition = await run_in_threadpool(compose, snapshot, params, selection)
        except Exception as e:
            logger.error(f"Error composing heatmap: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        if self.metrics:
            self.metrics.record_request_duration("heatmap", time.time() - started)

        return {
            "base": composition.base,
            "image": base64.b64encode(composition.image).decode("ascii"),
            "decomposition": composition.decomposition,
        }

    async def _details(self, request: Request):
        """Break down the cell under the requested coordinate."""
        started = time.time()
        try:
            cell = cell_params(self._params(request))
            snapshot = self.store.snapshot(cell.base, cell.base + 1)
            details = resolve_details(snapshot, cell)
        except Exception as e:
            logger.error(f"Error resolving details: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        if self.metrics:
            self.metrics.record_request_duration("details", time.time() - started)

        return details

    async def _conf(self, request: Request):
        """Active configuration."""
        return self.config.conf_view()

    async def _status(self, request: Request):
        """Current store and sampler status."""
        return {
            "uptime_seconds": time.time() - self.start_time,
            "latest_sample": self.store.latest_sample,
            "window_s": self.store.window,
            "retained_samples": self.store.retained_samples(),
            "decomposition_keys": self.store.keys(),
            "tick_count": self.engine.tick_count if self.engine else 0,
            "running": self.engine.running if self.engine else False,
        }
