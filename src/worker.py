"""
Stand-alone invoice worker.

Usage:
    python -m src.worker

Use this instead of the in-process scheduler (SCHEDULER_ENABLED=false) when
PDF rendering should not share a process with the API.
"""

import asyncio
import logging

from src.config import settings
from src.services.invoice_worker import run_invoice_worker

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def main():
    asyncio.run(run_invoice_worker(settings.invoice_worker_interval_seconds))


if __name__ == "__main__":
    main()
