"""Tests for the SSM substrate adapter, the command channel and the poller."""

import asyncio
from unittest import mock

import pytest
from botocore.exceptions import ClientError

from bastion_harness.errors import CommandFailed, CommandTimedOut, DispatchRejected
from bastion_harness.remote.poller import CommandPoller
from bastion_harness.remote.substrate import SsmSubstrate
from bastion_harness.remote.types import CommandRun, RunState, SubstrateStatus


def _client_error(code, operation="SendCommand"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ---------------------------------------------------------------------------
# SsmSubstrate
# ---------------------------------------------------------------------------

class TestSsmSubstrate:
    def test_submit_sends_run_shell_script(self):
        client = mock.MagicMock()
        client.send_command.return_value = {"Command": {"CommandId": "c-123"}}

        run_id = SsmSubstrate(client).submit("i-1", "AWS-RunShellScript", ("echo hi",), "x" * 150)

        assert run_id == "c-123"
        kwargs = client.send_command.call_args.kwargs
        assert kwargs["InstanceIds"] == ["i-1"]
        assert kwargs["DocumentName"] == "AWS-RunShellScript"
        assert kwargs["Parameters"] == {"commands": ["echo hi"]}
        assert len(kwargs["Comment"]) == 100

    def test_submit_rejected(self):
        client = mock.MagicMock()
        client.send_command.side_effect = _client_error("InvalidInstanceId")

        with pytest.raises(DispatchRejected, match="InvalidInstanceId"):
            SsmSubstrate(client).submit("i-nope", "AWS-RunShellScript", ("true",), "c")

    @pytest.mark.parametrize(
        "ssm_status, state",
        [
            ("Pending", RunState.PENDING),
            ("InProgress", RunState.PENDING),
            ("Delayed", RunState.PENDING),
            ("Success", RunState.SUCCESS),
            ("Failed", RunState.FAILED),
            ("Cancelling", RunState.PENDING),
            ("Cancelled", RunState.FAILED),
            ("TimedOut", RunState.FAILED),
        ],
    )
    def test_status_mapping(self, ssm_status, state):
        client = mock.MagicMock()
        client.get_command_invocation.return_value = {
            "Status": ssm_status,
            "StandardOutputContent": "out",
            "StandardErrorContent": "err",
        }

        status = SsmSubstrate(client).get_status("c-1", "i-1")

        client.get_command_invocation.assert_called_once_with(CommandId="c-1", InstanceId="i-1")
        assert status == SubstrateStatus(state, "out", "err")

    def test_invocation_not_visible_yet_is_pending(self):
        client = mock.MagicMock()
        client.get_command_invocation.side_effect = _client_error("InvocationDoesNotExist", "GetCommandInvocation")

        assert SsmSubstrate(client).get_status("c-1", "i-1").state is RunState.PENDING

    def test_status_query_fault_is_a_failure(self):
        client = mock.MagicMock()
        client.get_command_invocation.side_effect = _client_error("AccessDenied", "GetCommandInvocation")

        status = SsmSubstrate(client).get_status("c-1", "i-1")
        assert status.state is RunState.FAILED
        assert "AccessDenied" in status.stderr


# ---------------------------------------------------------------------------
# CommandChannel
# ---------------------------------------------------------------------------

class TestCommandChannel:
    def test_dispatch_prepends_user_switch(self, channel, substrate):
        run = channel.dispatch("i-1", ["./testScripts/a.sh"], "Execute a")

        assert run.state is RunState.PENDING
        assert run.submitted_commands == (
            "sudo -i",
            "su - ec2-user >/dev/null",
            "cd ~ec2-user",
            "./testScripts/a.sh",
        )
        assert substrate.submissions[0].document_name == "AWS-RunShellScript"
        assert substrate.submissions[0].comment == "Execute a"

    def test_unknown_host_rejected(self, channel):
        with pytest.raises(DispatchRejected):
            channel.dispatch("i-unknown", ["true"], "c")

    def test_empty_command_set_rejected(self, channel, substrate):
        with pytest.raises(DispatchRejected):
            channel.dispatch("i-1", [], "c")
        assert substrate.submissions == []


# ---------------------------------------------------------------------------
# CommandPoller
# ---------------------------------------------------------------------------

class TestCommandPoller:
    def test_success_populates_output(self, channel, poller, substrate):
        substrate.on(
            "ok.sh",
            SubstrateStatus(RunState.PENDING),
            SubstrateStatus(RunState.PENDING, "par"),
            SubstrateStatus(RunState.SUCCESS, "done", ""),
        )
        run = asyncio.run(poller.wait(channel.dispatch("i-1", ["ok.sh"], "c"), timeout=5))

        assert run.state is RunState.SUCCESS
        assert run.stdout == "done"
        assert substrate.status_calls == 3
        assert run.raise_for_state() is run

    def test_failure_keeps_stderr(self, channel, poller, substrate):
        substrate.on("bad.sh", SubstrateStatus(RunState.FAILED, "", "no such file"))
        run = asyncio.run(poller.wait(channel.dispatch("i-1", ["bad.sh"], "c"), timeout=5))

        assert run.state is RunState.FAILED
        assert run.stderr == "no such file"
        with pytest.raises(CommandFailed, match="no such file"):
            run.raise_for_state()

    def test_never_terminal_times_out_with_partial_output(self, channel, substrate):
        substrate.on("slow.sh", SubstrateStatus(RunState.PENDING, "half"))
        poller = CommandPoller(substrate, interval=0.01)

        run = asyncio.run(poller.wait(channel.dispatch("i-1", ["slow.sh"], "c"), timeout=0.05))

        assert run.state is RunState.TIMED_OUT
        assert run.stdout == "half"
        with pytest.raises(CommandTimedOut, match="may still be running"):
            run.raise_for_state()

    def test_zero_timeout_polls_once(self, channel, substrate):
        substrate.on("slow.sh", SubstrateStatus(RunState.PENDING))
        poller = CommandPoller(substrate, interval=1)

        run = asyncio.run(poller.wait(channel.dispatch("i-1", ["slow.sh"], "c"), timeout=0))

        assert run.state is RunState.TIMED_OUT
        assert substrate.status_calls == 1

    def test_terminal_run_is_returned_untouched(self, poller, substrate):
        run = CommandRun("c-9", "i-1", ("true",), state=RunState.SUCCESS, stdout="x")
        assert asyncio.run(poller.wait(run, timeout=1)) is run
        assert substrate.status_calls == 0

    def test_pending_run_cannot_raise_for_state(self):
        with pytest.raises(RuntimeError):
            CommandRun("c-1", "i-1", ("true",)).raise_for_state()

    def test_interval_must_be_positive(self, substrate):
        with pytest.raises(ValueError):
            CommandPoller(substrate, interval=0)
