from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from bastion_harness.suites.definitions import SuiteDefinition
from bastion_harness.suites.driver import SuiteDriver, SuiteReport

logger = logging.getLogger(__name__)


@dataclass
class HarnessRunResult:
    ok: bool
    run_id: str
    suite_code: str
    reports: List[SuiteReport]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "run_id": self.run_id,
            "suite_code": self.suite_code,
            "suites": [
                {
                    "index": r.suite_index,
                    "state": r.state.value,
                    "trail": [s.value for s in r.trail],
                    "passed": r.passed,
                    "error": r.error,
                    "teardown_error": r.teardown_error,
                    "results": [
                        {
                            "test_id": a.test_id,
                            "matched": a.matched,
                            "raw_output": a.raw_output,
                            "error": a.error,
                        }
                        for a in r.results
                    ],
                }
                for r in self.reports
            ],
        }


class HarnessRunner:
    """
    Runs several indexes of a suite against the shared bastion.

    Suites marked concurrent run as independent asyncio tasks, each one
    sequencing its own commands. Suites whose variants share host state run
    one variant after another. A failing suite never stops the others.
    """

    def __init__(self, driver: SuiteDriver, result_sink=None) -> None:
        self.driver = driver
        self.sink = result_sink

    async def run(self, suite: SuiteDefinition, indexes: Optional[Iterable[int]] = None) -> HarnessRunResult:
        run_id = str(uuid.uuid4())
        started = time.monotonic()

        if indexes is None:
            indexes = sorted(suite.variants) or self.driver.directory.suite_indexes()
        indexes = list(indexes)
        logger.info("Run %s: suite %s, indexes %s", run_id, suite.code, indexes)

        if suite.concurrent:
            reports = await asyncio.gather(*(self.driver.run(suite, index) for index in indexes))
        else:
            # Variants share host-local state (client config, fetched certs).
            reports = [await self.driver.run(suite, index) for index in indexes]

        result = HarnessRunResult(
            ok=all(r.passed for r in reports),
            run_id=run_id,
            suite_code=suite.code,
            reports=list(reports),
        )
        logger.info("Run %s finished in %.1fs, ok=%s", run_id, time.monotonic() - started, result.ok)

        if self.sink is not None:
            self.sink.write(result.as_dict())
        return result
