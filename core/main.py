"""
TopoTable - Network controller REST to table data source
Main Entry Point
"""
import argparse

import uvicorn

from core.config import Settings, get_config
from core.engine.logger import get_logger, setup_logging

logger = get_logger("topotable")


def print_banner(config: Settings, host: str, port: int):
    """Print startup banner"""
    banner = f"""
==================================================
  {config.app.name} {config.app.version}
  {config.app.description}
--------------------------------------------------
  Upstream:  {config.datasource.base_url}
  API:       http://{host}:{port}
  API Docs:  http://{host}:{port}/docs
==================================================
"""
    print(banner)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="TopoTable data source backend")
    parser.add_argument("--host", help="Bind address (overrides settings.yml)")
    parser.add_argument("--port", type=int, help="Bind port (overrides settings.yml)")
    args = parser.parse_args()

    config = get_config()
    setup_logging(config)

    host = args.host or config.server.host
    port = args.port or config.server.port

    print_banner(config, host, port)

    logger.info("Starting TopoTable...", base_url=config.datasource.base_url)

    from core.api.app import create_app
    app = create_app(config)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=config.logging.level.lower()
    )


if __name__ == "__main__":
    main()
