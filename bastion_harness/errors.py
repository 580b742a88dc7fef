class HarnessError(RuntimeError):
    """Base class for every failure raised by the bastion harness."""


class MissingOutput(HarnessError):
    """A discovery output required by a suite was never produced."""


class MalformedDiscoveryKey(HarnessError):
    """An index-bearing output key did not carry a parseable suite index.

    Indicates a provisioning / harness version mismatch; aborts the whole run.
    """


class DispatchRejected(HarnessError):
    """The remote substrate refused a command submission."""


class CommandFailed(HarnessError):
    def __init__(self, run):
        self.run = run
        super().__init__(
            f"Command {run.id} on {run.target_host_id} failed ({run.comment}): {run.stderr.strip() or '<no stderr>'}"
        )


class CommandTimedOut(HarnessError):
    def __init__(self, run):
        self.run = run
        super().__init__(
            f"Command {run.id} on {run.target_host_id} did not finish in time ({run.comment}); it may still be running"
        )
