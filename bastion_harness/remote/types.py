from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from bastion_harness.errors import CommandFailed, CommandTimedOut


class RunState(str, Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"


@dataclass(frozen=True)
class SubstrateStatus:
    state: RunState
    stdout: str = ""
    stderr: str = ""


@dataclass
class CommandRun:
    id: str
    target_host_id: str
    submitted_commands: Tuple[str, ...]
    comment: str = ""
    state: RunState = RunState.PENDING
    stdout: str = ""
    stderr: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.state is not RunState.PENDING

    def raise_for_state(self) -> "CommandRun":
        """Raise if the run ended in anything but success; returns the run otherwise."""
        if self.state is RunState.FAILED:
            raise CommandFailed(self)
        if self.state is RunState.TIMED_OUT:
            raise CommandTimedOut(self)
        if self.state is RunState.PENDING:
            raise RuntimeError(f"Command {self.id} has not been awaited yet")
        return self
