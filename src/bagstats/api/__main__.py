"""Entry point for launching the API server."""

from __future__ import annotations

import argparse

import uvicorn

from ..config.settings import get_app_config
from ..monitoring import bootstrap_observability
from ..monitoring.metrics import METRICS
from ..services.container import build_services
from .app import create_api_app
from .state import ServiceState


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Bags earnings API")
    parser.add_argument("--host", help="Override API host")
    parser.add_argument("--port", type=int, help="Override API port")
    parser.add_argument("--no-monitor", action="store_true", help="Do not start the bag monitor")
    args = parser.parse_args()

    config = get_app_config()
    if args.no_monitor:
        config.api.start_monitor = False
    bootstrap_observability(config)
    state = ServiceState(build_services(config), metrics=METRICS)
    app = create_api_app(state)
    host = args.host or config.api.host
    port = args.port or config.api.port
    uvicorn.run(app, host=host, port=port, log_level=config.monitoring.log_level.lower())


if __name__ == "__main__":
    main()
