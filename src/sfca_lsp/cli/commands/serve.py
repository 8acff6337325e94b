"""
Serve Command - Start the language server.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import click

from ...config import load_settings
from ...server import build_server, configure_logging

logger = logging.getLogger(__name__)


def parse_address(value: str) -> Tuple[str, int]:
    """Split HOST:PORT. Raises click.BadParameter on malformed input."""
    host, sep, port = value.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise click.BadParameter(f"Expected HOST:PORT, got '{value}'")
    return host, int(port)


@click.command()
@click.option("--tcp", "address", metavar="HOST:PORT", help="Listen on TCP instead of stdio")
@click.option("--root", type=click.Path(exists=True, file_okay=False), default=".", help="Workspace root (default: .)")
def serve(address: Optional[str], root: str):
    """
    Run the Code Analyzer language server.

    Speaks LSP over stdio unless --tcp is given.
    """
    tcp = parse_address(address) if address else None
    root_path = Path(root).resolve()
    settings = load_settings(root_path)
    configure_logging(settings.log_level)

    server = build_server(settings, root_path)
    if tcp:
        logger.info(f"Listening on {tcp[0]}:{tcp[1]}")
        server.start_tcp(*tcp)
    else:
        server.start_io()
