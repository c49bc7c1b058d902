"""Main entry point for the live heatmap service."""
import argparse
import logging
import sys

import uvicorn

from heatscope.api import HeatmapAPI
from heatscope.config import load_config
from heatscope.engine import SamplerEngine
from heatscope.logs import setup_logging
from heatscope.prom_exporter import SelfMetrics, start_metrics_server
from heatscope.sources import create_source
from heatscope.store import AggregationStore


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Live heatmaps of keyed aggregations over a rolling window"
    )
    parser.add_argument(
        "config",
        help="Configuration YAML/JSON file, or an instrumentation program to run"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"heatscope: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Tick interval: {config.global_.tick_interval_s}s")
    logger.info(f"Window: {config.global_.window_s} samples")
    logger.info(f"Source: {config.source.kind}")

    if config.program:
        print("vvv program vvv")
        print(config.program)
        print("^^^ program ^^^")

    store = AggregationStore(config.global_.window_s)

    metrics = None
    if config.exporters.prometheus.enabled:
        metrics = SelfMetrics(prefix=config.exporters.prometheus.prefix)
        try:
            start_metrics_server(config.exporters.prometheus, metrics)
        except Exception:
            sys.exit(1)

    try:
        source = create_source(config)
    except Exception as e:
        logger.error(f"Failed to initialize source: {e}", exc_info=True)
        sys.exit(1)

    server: uvicorn.Server = None
    failures = []

    def on_fatal(message: str):
        failures.append(message)
        server.should_exit = True

    engine = SamplerEngine(
        store,
        source,
        tick_interval_s=config.global_.tick_interval_s,
        metrics=metrics,
        on_fatal=on_fatal,
    )
    api = HeatmapAPI(config, store, engine=engine, metrics=metrics)

    if not api.index_path().is_file():
        logger.error(f"could not find index file \"{api.index_path()}\"")
        sys.exit(1)

    logger.info(f"Starting HTTP server on port {config.server.port}")
    server = uvicorn.Server(uvicorn.Config(
        api.app,
        host=config.server.host,
        port=config.server.port,
        log_level="info",
    ))

    try:
        server.run()
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        sys.exit(1)

    if failures:
        logger.critical(f"Exiting: {failures[0]}")
        sys.exit(1)

    if not server.started:
        logger.error("Server failed to start")
        sys.exit(1)


if __name__ == "__main__":
    main()
