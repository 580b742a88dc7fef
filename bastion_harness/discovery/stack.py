import logging
from typing import Dict

from botocore.exceptions import ClientError

from bastion_harness.errors import MissingOutput

logger = logging.getLogger(__name__)


def testing_stack_name(suite_code: str, stack_tag: str) -> str:
    return f"RFDKInteg-{suite_code}-TestingTier{stack_tag}"


def fetch_stack_outputs(cloudformation, stack_name: str) -> Dict[str, str]:
    """Read the Outputs of a deployed CloudFormation stack into a flat key/value mapping."""
    try:
        response = cloudformation.describe_stacks(StackName=stack_name)
    except ClientError as e:
        raise MissingOutput(f"Could not describe stack {stack_name}: {e}") from e

    stacks = response.get("Stacks") or []
    if not stacks:
        raise MissingOutput(f"Stack {stack_name} not found")

    outputs = {o["OutputKey"]: o["OutputValue"] for o in stacks[0].get("Outputs") or []}
    logger.info("Loaded %d outputs from %s", len(outputs), stack_name)
    return outputs
