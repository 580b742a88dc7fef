"""
Boot-time (user data) script for the bastion host.

The script runs once, as root, when the instance first boots. Every unit it
installs is fetched from a packaged asset instead of being inlined, and the
steps run in a fixed order because later steps use tools installed by
earlier ones (the setup scripts need jq, the client installer needs the
setup scripts). Under strict mode any failing step aborts the script before
the completion signal, which the provisioning phase reads as a failed boot
once SIGNAL_TIMEOUT runs out.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Sequence, Tuple

from bastion_harness.boot.assets import BootAssets, download_command, local_path

DEFAULT_USER = "ec2-user"
UTIL_SCRIPTS_DIR = "utilScripts"
TEST_SCRIPTS_DIR = "testScripts"
CLIENT_INSTALLER_COPY = "deadline-client-installer.run"

# Public CA bundle used by the tests to validate the DocumentDB TLS endpoint.
TRUST_BUNDLE_URL = "https://s3.amazonaws.com/rds-downloads/rds-combined-ca-bundle.pem"

SIGNAL_TIMEOUT = timedelta(minutes=5)


@dataclass(frozen=True)
class BootConfig:
    install_client_runtime: bool
    fetch_external_trust_bundle: bool
    test_script_package_locator: str


@dataclass(frozen=True)
class SignalTarget:
    """CloudFormation resource waiting on the boot completion signal."""
    stack: str
    resource: str
    region: str

    def command(self) -> str:
        return (
            f"/opt/aws/bin/cfn-signal --stack {self.stack} --resource {self.resource} "
            f"--region {self.region} -e 0"
        )


@dataclass(frozen=True)
class BootStep:
    order: int
    condition: bool
    commands: Tuple[str, ...]


def creation_policy(timeout: timedelta = SIGNAL_TIMEOUT) -> dict:
    """Creation policy that makes the stack wait for exactly one completion signal."""
    minutes = int(timeout.total_seconds() // 60)
    return {"ResourceSignal": {"Count": 1, "Timeout": f"PT{minutes}M"}}


def render_user_data(commands: Sequence[str]) -> str:
    return "#!/bin/bash\n" + "\n".join(commands) + "\n"


class BootPipelineBuilder:
    def __init__(self, assets: BootAssets, signal: SignalTarget, user: str = DEFAULT_USER) -> None:
        self.assets = assets
        self.signal = signal
        self.user = user
        self.home = f"~{user}"

    def steps(self, config: BootConfig) -> Tuple[BootStep, ...]:
        table: List[Tuple[bool, Callable[[], List[str]]]] = [
            (True, self._preamble),
            (True, self._setup_tools),
            (True, self._json_tool),
            (config.install_client_runtime, self._client_runtime),
            (True, self._setup_tools_cleanup),
            (True, self._util_scripts),
            (True, lambda: self._test_scripts(config.test_script_package_locator)),
            (config.fetch_external_trust_bundle, self._trust_bundle),
            (True, self._finish),
        ]
        return tuple(
            BootStep(order=order, condition=condition, commands=tuple(produce()) if condition else ())
            for order, (condition, produce) in enumerate(table, start=1)
        )

    def build(self, config: BootConfig) -> Tuple[str, ...]:
        return tuple(command for step in self.steps(config) if step.condition for command in step.commands)

    # -- step producers ------------------------------------------------------

    def _preamble(self) -> List[str]:
        return [
            "set -xeou pipefail",
            "TMPDIR=$(mktemp -d)",
            'cd "${TMPDIR}"',
        ]

    def _setup_tools(self) -> List[str]:
        archive = local_path(self.assets.setup_tools)
        return [
            download_command(self.assets.setup_tools, archive),
            f"unzip {archive}",
            "chmod +x *.sh",
        ]

    def _json_tool(self) -> List[str]:
        return ["./install_jq.sh"]

    def _client_runtime(self) -> List[str]:
        if not self.assets.client_installer or not self.assets.client_version:
            raise ValueError("Client runtime install requested but no installer/version was staged")
        installer = local_path(self.assets.client_installer)
        return [
            download_command(self.assets.client_installer, installer),
            f"cp {installer} ./{CLIENT_INSTALLER_COPY}",
            "chmod +x *.run",
            "./install_deadline_client.sh",
            f"rm -f {installer}",
        ]

    def _setup_tools_cleanup(self) -> List[str]:
        return [f"rm -f {local_path(self.assets.setup_tools)}"]

    def _unpack_into(self, locator: str, directory: str) -> List[str]:
        archive = local_path(locator)
        return [
            download_command(locator, archive),
            f"cd {self.home}",
            f"mkdir -p {directory}",
            f"cd {directory}",
            f"unzip {archive}",
            "chmod +x *.sh",
            f"rm -f {archive}",
        ]

    def _util_scripts(self) -> List[str]:
        return self._unpack_into(self.assets.util_scripts, UTIL_SCRIPTS_DIR)

    def _test_scripts(self, locator: str) -> List[str]:
        if not locator:
            raise ValueError("test_script_package_locator must be set")
        return self._unpack_into(locator, TEST_SCRIPTS_DIR)

    def _trust_bundle(self) -> List[str]:
        return [
            f"cd {self.home}",
            f"mkdir -p {TEST_SCRIPTS_DIR}",
            f"cd {TEST_SCRIPTS_DIR}",
            f"wget {TRUST_BUNDLE_URL}",
        ]

    def _finish(self) -> List[str]:
        # Everything above ran as root; hand the home tree back to the user.
        return [
            f"cd {self.home}",
            f"chown -R {self.user}:{self.user} {self.home}",
            'rm -rf "${TMPDIR}"',
            self.signal.command(),
        ]
