import boto3

from bastion_harness.config import HarnessSettings
from bastion_harness.export.result_sink import ResultSink
from bastion_harness.remote.channel import CommandChannel
from bastion_harness.remote.poller import CommandPoller
from bastion_harness.remote.substrate import SsmSubstrate


def before_all(context):
    context.config.setup_logging()

    context.settings = HarnessSettings.from_env()
    context.cloudformation = boto3.client("cloudformation", region_name=context.settings.region)

    substrate = SsmSubstrate(boto3.client("ssm", region_name=context.settings.region))
    context.channel = CommandChannel(substrate)
    context.poller = CommandPoller(substrate, interval=context.settings.poll_interval)
    context.result_sink = ResultSink(
        console=context.settings.results_console,
        json_path=context.settings.results_json,
    )


def before_scenario(context, scenario):
    # Reset per scenario
    context.suite = None
    context.directory = None
    context.run_result = None
