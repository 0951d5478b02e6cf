"""Logging and Logfire setup for the executor process.

The executor runs unattended under the native scheduler, so log records go
to stderr (captured by Task Scheduler / cron mail) and, when LOGFIRE_TOKEN
is present, to Logfire as well.
"""

import logging
import os

import logfire

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_telemetry(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger = logging.getLogger(__name__)

    try:
        logfire.configure(
            service_name="cron-claude",
            send_to_logfire="if-token-present",
            token=os.environ.get("LOGFIRE_TOKEN") or None,
            console=False,
            inspect_arguments=False,
        )
        logfire.instrument_httpx()
    except Exception as e:
        # Telemetry must never stop a scheduled run
        logger.debug(f"Logfire unavailable, continuing with stdlib logging only: {e}")
