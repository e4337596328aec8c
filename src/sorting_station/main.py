#!/usr/bin/env python3
"""
Waste Sorting Station - Main Entry Point

Usage:
    python -m sorting_station                     # Run station (monitoring on)
    python -m sorting_station --web               # With operator web interface
    python -m sorting_station --camera 192.168.1.50 --mode production
"""

import argparse
import asyncio
import logging

from sorting_station.config import MODES, WEB_HOST, WEB_PORT


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Waste Sorting Station")
    parser.add_argument(
        "--web",
        action="store_true",
        help="Enable operator web interface",
    )
    parser.add_argument(
        "--host",
        default=WEB_HOST,
        help="Web interface bind address",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=WEB_PORT,
        help="Web interface port",
    )
    parser.add_argument(
        "--camera",
        help="Camera address (overrides saved parameters)",
    )
    parser.add_argument(
        "--controller",
        help="Sorting controller address (overrides saved parameters)",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        help="Deployment mode: development tries the controller directly, production uses the proxy",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Waste sorting station starting...")

    from sorting_station.control import Station
    from sorting_station.params import Parameters

    params = Parameters.load()
    overrides = {
        key: value
        for key, value in (("camera_address", args.camera), ("controller_address", args.controller), ("mode", args.mode))
        if value is not None
    }
    if overrides:
        params.update(**overrides)
    logger.info(
        f"Mode: {params.mode}, camera: {params.camera_address or 'not set'}, "
        f"controller: {params.controller_address or 'proxy only'}"
    )

    station = Station(params=params)
    asyncio.run(station.run(web=args.web, host=args.host, port=args.port))


if __name__ == "__main__":
    main()
