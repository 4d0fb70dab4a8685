import asyncio

from services.lifecycle.SweeperService import SweeperService
from shared.exceptions.errors import PipelineError
from shared.helper.HelperConfig import HelperConfig


class SweepScheduler:
    """Runs the lifecycle sweep (followed by the orphan sweep) on a fixed interval.

    The loop runs as an asyncio task owned by the application lifespan: one
    sweep right after start, then one every LIFECYCLE_SWEEP_INTERVAL_SECONDS.
    A failed sweep is logged and retried on the next tick.
    """

    def __init__(self, helper_config: HelperConfig, sweeper: SweeperService) -> None:
        self.logging = helper_config.get_logger()
        self._sweeper = sweeper
        self.enabled = helper_config.get_bool_val("LIFECYCLE_SWEEP_ENABLED", default=True)
        self.interval_seconds = float(
            helper_config.get_number_val("LIFECYCLE_SWEEP_INTERVAL_SECONDS", default=sweeper.retention_seconds)
        )
        self._task: asyncio.Task | None = None

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop on the running event loop. No-op when disabled or already running."""
        if not self.enabled:
            self.logging.info("Lifecycle sweep scheduler is disabled.")
            return
        if self.is_running():
            return
        self._task = asyncio.create_task(self._run(), name="lifecycle-sweep")
        self.logging.info("Lifecycle sweep scheduled every %ss.", self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            self.logging.exception("Lifecycle sweep loop had already stopped with an error.")
        self._task = None
        self.logging.debug("Lifecycle sweep scheduler stopped.")

    async def run_once(self) -> None:
        """Run one lifecycle sweep followed by one orphan sweep."""
        try:
            await self._sweeper.do_sweep()
        except PipelineError as exc:
            self.logging.error("Scheduled lifecycle sweep failed: %s", exc.message)
        except Exception:
            self.logging.exception("Scheduled lifecycle sweep failed unexpectedly.")
        try:
            await self._sweeper.do_sweep_orphans()
        except PipelineError as exc:
            self.logging.error("Scheduled orphan sweep failed: %s", exc.message)
        except Exception:
            self.logging.exception("Scheduled orphan sweep failed unexpectedly.")

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
