"""Main module entrypoint for local runtime execution.

This module validates startup configuration and runs the council loop, one
supervision cycle, or the inspection API.
"""

import argparse
import logging
import signal

import uvicorn

from city_services.bootstrap import bootstrap_create_application, bootstrap_create_runtime
from city_services.config import config_load_settings
from city_services.jobs import EventTicker

logger = logging.getLogger(__name__)


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
    """

    argument_parser = argparse.ArgumentParser(description="City services council runtime entrypoint")
    argument_parser.add_argument(
        "command",
        nargs="?",
        default="council",
        choices=("council", "cycle", "api"),
        help="Runtime command: `council` runs the supervision loop until SIGINT/SIGTERM, "
        "`cycle` runs one supervision cycle, `api` starts the inspection server",
        type=str,
    )
    parsed_arguments = argument_parser.parse_args()

    settings = config_load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if parsed_arguments.command == "api":
        application = bootstrap_create_application(bootstrap_create_runtime(settings))
        uvicorn.run(
            application,
            host=settings.application_host,
            port=settings.application_port,
        )
        return

    runtime = bootstrap_create_runtime(settings)
    if parsed_arguments.command == "cycle":
        runtime.orchestrator.orchestrator_start()
        execution_result = runtime.orchestrator.job_execute(job_name="supervision_cycle")
        runtime.supervisor.supervisor_begin_shutdown()
        runtime.supervisor.supervisor_terminate_all()
        runtime.bus.bus_close()
        if execution_result.status != "success":
            raise SystemExit(1)
        return

    ticker = EventTicker()

    def main_handle_signal(signal_number: int, _frame) -> None:
        logger.info("Received signal %s, shutting down", signal_number)
        runtime.orchestrator.orchestrator_request_shutdown()

    signal.signal(signal.SIGINT, main_handle_signal)
    signal.signal(signal.SIGTERM, main_handle_signal)

    runtime.dispatch_router.dispatch_subscribe()
    try:
        runtime.orchestrator.orchestrator_run_forever(ticker)
    finally:
        runtime.bus.bus_close()


if __name__ == "__main__":
    main()
