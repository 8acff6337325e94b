import time
from pathlib import Path
from typing import Any

import click

from ..config import config_path_for, load_settings
from ..core.telemetry import TelemetryService, create_telemetry_service

COMMAND_RUN_EVENT = "sfca_command_run"


def get_telemetry_service() -> TelemetryService:
    """Telemetry for the workspace in the current directory."""
    root = Path.cwd()
    return create_telemetry_service(config_path_for(root), load_settings(root).telemetry.enabled)


class TelemetryGroup(click.Group):
    """
    A custom Click Group that wraps command invocation with telemetry tracking.

    This class acts as middleware, intercepting the `invoke` method to:
    1. Measure command duration.
    2. Capture success/failure states and exit codes.
    3. Ensure telemetry is sent even if the command crashes or exits early.
    """

    def invoke(self, ctx: click.Context) -> Any:
        """
        Intercept command invocation to track usage statistics.

        Args:
            ctx: The Click execution context.

        Returns:
            The result of the invoked command.
        """
        start_time = time.perf_counter()
        exit_code = 0
        error_type = None

        try:
            return super().invoke(ctx)
        except click.exceptions.Exit as e:
            # ctx.exit() raises click's own Exit rather than SystemExit
            exit_code = e.exit_code
            if exit_code != 0:
                error_type = "SystemExit"
            raise
        except SystemExit as e:
            # Handle intentional exits via sys.exit() or ctx.exit()
            exit_code = e.code if isinstance(e.code, int) else 1
            if exit_code != 0:
                error_type = "SystemExit"
            raise
        except Exception as e:
            exit_code = 1
            error_type = type(e).__name__
            raise
        finally:
            # Runs on success and on the way out of a crash alike.
            try:
                duration_ms = (time.perf_counter() - start_time) * 1000
                get_telemetry_service().send_command_event(
                    COMMAND_RUN_EVENT,
                    {
                        "command": ctx.invoked_subcommand or "unknown",
                        "duration_ms": round(duration_ms, 2),
                        "success": exit_code == 0,
                        "exit_code": exit_code,
                        "error_type": error_type,
                    },
                )
            except Exception:
                # Telemetry failures must be silent
                pass
