import os
from dataclasses import dataclass
from typing import Optional

_BOOL_TRUE = {"true", "1", "yes", "y", "on"}


@dataclass(frozen=True)
class HarnessSettings:
    stack_tag: str
    region: str
    poll_interval: float
    command_timeout: float
    results_json: Optional[str]
    results_console: bool

    @classmethod
    def from_env(cls) -> "HarnessSettings":
        stack_tag = os.getenv("INTEG_STACK_TAG")
        if not stack_tag:
            raise RuntimeError("INTEG_STACK_TAG env missing; it names the deployed testing stacks")

        return cls(
            stack_tag=stack_tag,
            region=os.getenv("AWS_REGION", "us-west-2"),
            poll_interval=float(os.getenv("BASTION_POLL_INTERVAL_SECONDS", "5")),
            command_timeout=float(os.getenv("BASTION_COMMAND_TIMEOUT_SECONDS", "900")),
            results_json=os.getenv("BASTION_RESULTS_JSON") or None,
            results_console=os.getenv("BASTION_RESULTS_CONSOLE", "false").lower() in _BOOL_TRUE,
        )
