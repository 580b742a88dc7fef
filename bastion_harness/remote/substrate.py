import logging
from typing import Protocol, Sequence

from botocore.exceptions import ClientError

from bastion_harness.errors import DispatchRejected
from bastion_harness.remote.types import RunState, SubstrateStatus

logger = logging.getLogger(__name__)

# SSM rejects comments longer than this.
SSM_COMMENT_LIMIT = 100

_SSM_STATES = {
    "Pending": RunState.PENDING,
    "InProgress": RunState.PENDING,
    "Delayed": RunState.PENDING,
    "Success": RunState.SUCCESS,
    "Failed": RunState.FAILED,
    "Cancelled": RunState.FAILED,
    "Cancelling": RunState.PENDING,
    "TimedOut": RunState.FAILED,
}


class Substrate(Protocol):
    """Remote execution backend the channel and poller talk to."""

    def submit(self, host_id: str, document_name: str, commands: Sequence[str], comment: str) -> str:
        ...

    def get_status(self, run_id: str, host_id: str) -> SubstrateStatus:
        ...


class SsmSubstrate:
    """Runs shell scripts on EC2 instances through AWS Systems Manager."""

    def __init__(self, client):
        # boto3.client("ssm")
        self.client = client

    def submit(self, host_id: str, document_name: str, commands: Sequence[str], comment: str) -> str:
        try:
            response = self.client.send_command(
                InstanceIds=[host_id],
                DocumentName=document_name,
                Comment=comment[:SSM_COMMENT_LIMIT],
                Parameters={"commands": list(commands)},
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise DispatchRejected(f"SSM refused command for {host_id} ({code}): {e}") from e

        command_id = response["Command"]["CommandId"]
        logger.debug("SSM accepted command %s for %s", command_id, host_id)
        return command_id

    def get_status(self, run_id: str, host_id: str) -> SubstrateStatus:
        try:
            response = self.client.get_command_invocation(CommandId=run_id, InstanceId=host_id)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == "InvocationDoesNotExist":
                # Status lags right after send_command.
                return SubstrateStatus(state=RunState.PENDING)
            logger.warning("SSM status query for %s failed: %s", run_id, code)
            return SubstrateStatus(state=RunState.FAILED, stderr=f"SSM status query failed ({code}): {e}")

        status = response.get("Status", "Pending")
        state = _SSM_STATES.get(status)
        if state is None:
            raise ValueError(f"Unknown SSM invocation status: {status}")

        return SubstrateStatus(
            state=state,
            stdout=response.get("StandardOutputContent", "") or "",
            stderr=response.get("StandardErrorContent", "") or "",
        )
