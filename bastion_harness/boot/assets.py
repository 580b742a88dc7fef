import posixpath
from dataclasses import dataclass
from typing import Optional

CLIENT_OS = "linux"
CLIENT_ARCH = "x64"

SETUP_TOOLS_ARCHIVE = "setup.zip"
UTIL_SCRIPTS_ARCHIVE = "utils.zip"


def client_installer_name(version: str, os: str = CLIENT_OS, arch: str = CLIENT_ARCH) -> str:
    return f"DeadlineClient-{version}-{os}-{arch}-installer.run"


@dataclass(frozen=True)
class BootAssets:
    """
    Locations of the packaged assets the boot script downloads.

    Packaging and upload happen in the provisioning phase; by the time the
    pipeline is built every asset is an immutable object behind one of these
    locators (s3:// or http(s)://).
    """
    setup_tools: str
    util_scripts: str
    client_installer: Optional[str] = None
    client_version: Optional[str] = None

    @classmethod
    def under(cls, root: str, client_version: Optional[str] = None) -> "BootAssets":
        root = root.rstrip("/")
        installer = None
        if client_version:
            installer = f"{root}/{client_installer_name(client_version)}"
        return cls(
            setup_tools=f"{root}/{SETUP_TOOLS_ARCHIVE}",
            util_scripts=f"{root}/{UTIL_SCRIPTS_ARCHIVE}",
            client_installer=installer,
            client_version=client_version,
        )


def local_path(locator: str, directory: str = "/tmp") -> str:
    return posixpath.join(directory, posixpath.basename(locator.rstrip("/")))


def download_command(locator: str, destination: str) -> str:
    if locator.startswith("s3://"):
        return f"aws s3 cp '{locator}' '{destination}'"
    if locator.startswith(("http://", "https://")):
        return f"wget -q -O '{destination}' '{locator}'"
    raise ValueError(f"Unsupported asset locator: {locator}")
