"""
sfca CLI - Main entry point.

This module registers all CLI commands. Each command is implemented
in its own module under cli/commands/.
"""

import click

from .commands import scan, serve
from .utils_telemetry import TelemetryGroup


@click.group(cls=TelemetryGroup)
@click.version_option(package_name="sfca-lsp")
def main():
    """sfca: Code Analyzer diagnostics and fixes for your editor.

    \b
    Quick Start:
      sfca scan force-app/main/default/classes/MyClass.cls
      sfca serve
      sfca serve --tcp 127.0.0.1:2087
    """
    pass


# Register commands
main.add_command(scan.scan)
main.add_command(serve.serve)

if __name__ == "__main__":
    main()
