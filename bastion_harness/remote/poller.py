import asyncio
import logging
import time
from typing import Callable

from bastion_harness.remote.substrate import Substrate
from bastion_harness.remote.types import CommandRun, RunState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0


class CommandPoller:
    """
    Waits on a dispatched CommandRun until it reaches a terminal state.

    Only the awaiting suite is suspended between polls; other suites keep
    running on the same event loop. A run that outlives its budget is
    reported as TIMED_OUT and left alone on the host.
    """

    def __init__(
        self,
        substrate: Substrate,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Poll interval must be > 0, got {interval}")
        self.substrate = substrate
        self.interval = interval
        self.clock = clock

    async def wait(self, run: CommandRun, timeout: float) -> CommandRun:
        if run.is_terminal:
            return run

        deadline = self.clock() + timeout
        while True:
            # Synchronous on purpose: no worker threads. A status query is one short
            # API call; only the gap between polls yields to other suites.
            status = self.substrate.get_status(run.id, run.target_host_id)
            # Keep whatever the substrate reported so far; partial output matters on timeout.
            run.stdout = status.stdout
            run.stderr = status.stderr

            if status.state is not RunState.PENDING:
                run.state = status.state
                logger.info("%s (%s) finished: %s", run.id, run.comment, run.state.value)
                return run

            remaining = deadline - self.clock()
            if remaining <= 0:
                run.state = RunState.TIMED_OUT
                logger.warning("%s (%s) still pending after %.0fs", run.id, run.comment, timeout)
                return run

            await asyncio.sleep(min(self.interval, remaining))
