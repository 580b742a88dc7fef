import logging
from typing import Sequence

from bastion_harness.errors import DispatchRejected
from bastion_harness.remote.substrate import Substrate
from bastion_harness.remote.types import CommandRun

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT = "AWS-RunShellScript"
DEFAULT_USER = "ec2-user"


class CommandChannel:
    """
    Sends batches of shell commands to the bastion.

    The substrate runs everything as root; the prelude drops to the
    unprivileged user and its home directory before the caller's commands,
    which is where the boot scripts unpacked utilScripts/ and testScripts/.
    Dispatch is fire-and-forget: use CommandPoller to wait for the outcome.
    """

    def __init__(self, substrate: Substrate, document_name: str = DEFAULT_DOCUMENT, user: str = DEFAULT_USER):
        self.substrate = substrate
        self.document_name = document_name
        self.user = user

    def prelude(self) -> tuple:
        return (
            "sudo -i",
            f"su - {self.user} >/dev/null",
            f"cd ~{self.user}",
        )

    def dispatch(self, host_id: str, commands: Sequence[str], comment: str) -> CommandRun:
        if not host_id:
            raise DispatchRejected("No target host id given")
        if not commands:
            raise DispatchRejected(f"Empty command set for {host_id} ({comment})")

        submitted = self.prelude() + tuple(commands)
        run_id = self.substrate.submit(host_id, self.document_name, submitted, comment)
        logger.info("Dispatched %s to %s as %s", comment, host_id, run_id)

        return CommandRun(
            id=run_id,
            target_host_id=host_id,
            submitted_commands=submitted,
            comment=comment,
        )
