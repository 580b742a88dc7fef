from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from bastion_harness.discovery.outputs import OutputDirectory, ResolvedSuiteContext
from bastion_harness.errors import DispatchRejected, HarnessError, MissingOutput
from bastion_harness.remote.channel import CommandChannel
from bastion_harness.remote.poller import CommandPoller
from bastion_harness.remote.types import CommandRun, RunState
from bastion_harness.suites.definitions import (
    SuiteDefinition,
    TestCase,
    render_commands,
    template_fields,
)

logger = logging.getLogger(__name__)


class SuiteState(str, Enum):
    NOT_STARTED = "NotStarted"
    SETTING_UP = "SettingUp"
    RUNNING = "Running"
    TEARING_DOWN = "TearingDown"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(frozen=True)
class AssertionResult:
    suite_index: int
    test_id: str
    matched: bool
    raw_output: str
    error: Optional[str] = None


@dataclass
class SuiteReport:
    code: str
    suite_index: int
    state: SuiteState = SuiteState.NOT_STARTED
    trail: List[SuiteState] = field(default_factory=lambda: [SuiteState.NOT_STARTED])
    results: List[AssertionResult] = field(default_factory=list)
    error: Optional[str] = None
    teardown_error: Optional[str] = None

    def move(self, state: SuiteState) -> None:
        logger.info("%s%d: %s -> %s", self.code, self.suite_index, self.state.value, state.value)
        self.state = state
        self.trail.append(state)

    def finish(self) -> None:
        self.move(SuiteState.FAILED if self.error else SuiteState.DONE)

    @property
    def passed(self) -> bool:
        return (
            self.state is SuiteState.DONE
            and self.teardown_error is None
            and all(r.matched for r in self.results)
        )


class SuiteDriver:
    """
    Runs one suite (setup, assertions, teardown) against the bastion.

    Every dispatch waits for the previous run to finish, so a suite's
    commands execute on the host in submission order. Teardown is attempted
    on every path once setup has been dispatched, so credential material
    fetched by setup is always removed.
    """

    def __init__(
        self,
        channel: CommandChannel,
        poller: CommandPoller,
        directory: OutputDirectory,
        command_timeout: float,
        region: str,
    ) -> None:
        self.channel = channel
        self.poller = poller
        self.directory = directory
        self.command_timeout = command_timeout
        self.region = region

    async def run(self, suite: SuiteDefinition, index: int) -> SuiteReport:
        report = SuiteReport(code=suite.code, suite_index=index)

        try:
            ctx = self.directory.for_suite(index, suite.requires)
        except MissingOutput as e:
            logger.error("%s%d cannot start: %s", suite.code, index, e)
            report.error = str(e)
            report.finish()
            return report

        report.move(SuiteState.SETTING_UP)
        try:
            if await self._setup(suite, ctx, report):
                await self._run_tests(suite, ctx, report)
        except Exception as e:
            # Fatal to this suite only.
            logger.exception("%s%d aborted", suite.code, index)
            report.error = f"Suite aborted: {e!r}"
        finally:
            await self._teardown(suite, ctx, report)

        report.finish()
        return report

    async def _execute(self, host_id: str, commands: List[str], comment: str) -> CommandRun:
        run = self.channel.dispatch(host_id, commands, comment)
        return await self.poller.wait(run, self.command_timeout)

    async def _setup(self, suite: SuiteDefinition, ctx: ResolvedSuiteContext, report: SuiteReport) -> bool:
        if not suite.setup:
            return True

        commands = render_commands(suite.setup, template_fields(ctx, self.region))
        try:
            run = await self._execute(ctx.host_id, commands, f"Setup {suite.code}-{ctx.suite_index}")
            run.raise_for_state()
        except HarnessError as e:
            logger.error("%s%d setup failed: %s", suite.code, ctx.suite_index, e)
            report.error = f"Setup failed: {e}"
            return False
        return True

    async def _run_tests(self, suite: SuiteDefinition, ctx: ResolvedSuiteContext, report: SuiteReport) -> None:
        report.move(SuiteState.RUNNING)
        for case in suite.tests:
            test_id = suite.test_id(ctx.suite_index, case)
            try:
                result = await self._assert(suite, ctx, case, test_id)
            except DispatchRejected as e:
                logger.error("%s could not be dispatched: %s", test_id, e)
                report.error = f"{test_id} could not be dispatched: {e}"
                return
            logger.info("%s: %s", test_id, "matched" if result.matched else "NOT matched")
            report.results.append(result)

    async def _assert(
        self, suite: SuiteDefinition, ctx: ResolvedSuiteContext, case: TestCase, test_id: str
    ) -> AssertionResult:
        values = template_fields(ctx, self.region, case.params)
        run = await self._execute(ctx.host_id, render_commands((case.command,), values), f"Execute {test_id}")

        if run.state is RunState.SUCCESS:
            return AssertionResult(ctx.suite_index, test_id, case.matcher.matches(run.stdout), run.stdout)

        if run.state is RunState.TIMED_OUT:
            error = f"timed out after {self.command_timeout:.0f}s (command may still be running)"
        else:
            error = f"command failed: {run.stderr.strip() or '<no stderr>'}"
        return AssertionResult(ctx.suite_index, test_id, False, run.stdout, error=error)

    async def _teardown(self, suite: SuiteDefinition, ctx: ResolvedSuiteContext, report: SuiteReport) -> None:
        report.move(SuiteState.TEARING_DOWN)
        if not suite.teardown:
            return

        try:
            commands = render_commands(suite.teardown, template_fields(ctx, self.region))
            run = await self._execute(ctx.host_id, commands, f"Teardown {suite.code}-{ctx.suite_index}")
            run.raise_for_state()
        except HarnessError as e:
            logger.warning("%s%d teardown failed: %s", suite.code, ctx.suite_index, e)
            report.teardown_error = str(e)
        except Exception as e:
            logger.exception("%s%d teardown aborted", suite.code, ctx.suite_index)
            report.teardown_error = f"Teardown aborted: {e!r}"
