"""
Standalone entrypoint for running the pcap server.

Usage:
    python -m pcap_server [OPTIONS]
    pcap-server [OPTIONS]  (after pip install)

Service settings (paths, page size, decoder, query command, database) come
from the PCAP_* environment variables, see pcap_common.config.
"""

import argparse
import sys

import uvicorn


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Pcap Server - asynchronous pcap query jobs over HTTP",
    )
    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Bind address (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Bind port (default: 8000)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Uvicorn logging level (default: info)",
    )
    return parser.parse_args()


def main() -> int:
    """
    Main entrypoint for the server.

    Returns:
        Exit code (0 for success)
    """
    args = parse_args()
    uvicorn.run(
        "pcap_server.app:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
