"""Sweep runner entry point.

Runs one lifecycle sweep (evicting documents not accessed within the
retention window) followed by one orphan sweep, then exits. Useful from cron
when the API runs with LIFECYCLE_SWEEP_ENABLED=false.

Usage:
    python -m services.lifecycle.sweep_runner
"""

import asyncio

from server.api.ServiceContainer import ServiceContainer
from shared.exceptions.errors import PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging


async def main() -> int:
    """Run one full sweep. Returns the process exit code."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    container = ServiceContainer(helper_config=config)

    try:
        await container.boot()
        try:
            sweep = await container.sweeper_service.do_sweep()
            orphans = await container.sweeper_service.do_sweep_orphans()
        except PipelineError as e:
            logger.error(f"Sweep aborted: {e.message}")
            return 1
        logger.info(
            f"Sweep done: {sweep.evicted_count} evicted, {len(sweep.failed_ids)} failed, "
            f"{len(orphans.removed_ids)} orphan chunk set(s) removed."
        )
        return 1 if sweep.failed_ids or orphans.failed_ids else 0
    finally:
        await container.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
