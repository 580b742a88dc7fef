from dataclasses import dataclass
from typing import Dict, List, Tuple

import pytest

from bastion_harness.errors import DispatchRejected
from bastion_harness.remote.channel import CommandChannel
from bastion_harness.remote.poller import CommandPoller
from bastion_harness.remote.types import RunState, SubstrateStatus


@dataclass
class Submission:
    run_id: str
    host_id: str
    document_name: str
    commands: Tuple[str, ...]
    comment: str


class FakeSubstrate:
    """
    In-memory remote execution substrate.

    Rules map a substring of the submitted script to the sequence of
    statuses get_status() reports for it; the last status repeats.
    Unmatched submissions go Pending once, then succeed with empty output.
    """

    def __init__(self, known_hosts=("i-1",)):
        self.known_hosts = set(known_hosts)
        self.submissions: List[Submission] = []
        self.rules: List[Tuple[str, List[SubstrateStatus]]] = []
        self.reject_matching: List[str] = []
        self._pending: Dict[str, List[SubstrateStatus]] = {}
        self.status_calls = 0

    def on(self, needle: str, *statuses: SubstrateStatus) -> "FakeSubstrate":
        self.rules.append((needle, list(statuses)))
        return self

    def reject(self, needle: str) -> "FakeSubstrate":
        self.reject_matching.append(needle)
        return self

    def submit(self, host_id, document_name, commands, comment):
        script = "\n".join(commands)
        if host_id not in self.known_hosts:
            raise DispatchRejected(f"unknown host {host_id}")
        if any(needle in script for needle in self.reject_matching):
            raise DispatchRejected(f"rejected: {comment}")

        run_id = f"cmd-{len(self.submissions) + 1}"
        self.submissions.append(Submission(run_id, host_id, document_name, tuple(commands), comment))

        statuses = [pending(), success()]
        for needle, configured in self.rules:
            if needle in script:
                statuses = list(configured)
                break
        self._pending[run_id] = statuses
        return run_id

    def get_status(self, run_id, host_id):
        self.status_calls += 1
        queue = self._pending[run_id]
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def scripts(self) -> List[str]:
        return ["\n".join(s.commands) for s in self.submissions]


def pending(stdout="", stderr=""):
    return SubstrateStatus(RunState.PENDING, stdout, stderr)


def success(stdout="", stderr=""):
    return SubstrateStatus(RunState.SUCCESS, stdout, stderr)


@pytest.fixture
def substrate():
    return FakeSubstrate()


@pytest.fixture
def channel(substrate):
    return CommandChannel(substrate)


@pytest.fixture
def poller(substrate):
    return CommandPoller(substrate, interval=0.001)

