"""
Appointment bot entry point.

Serves the webhook/health/notification API with uvicorn, or runs the
offline console demo.

Usage:
    Server:       python main.py
    Console mode: python main.py console [--scenario summary|announcement|conflict]
"""

import logging
import os
import sys

from appointment_bot.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the HTTP API (requires OPENAI_API_KEY and channel credentials)."""
    import uvicorn

    from appointment_bot.app import create_app

    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting %s on port %d", settings.app_name, port)
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level=settings.log_level.lower())


def _run_console_mode(argv: list[str]) -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import main as console_main

    console_main(argv)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode(sys.argv[2:])
    else:
        _run_server()
