import argparse
import os
import sys
from pathlib import Path

import yaml

from bastion_harness.boot.assets import BootAssets
from bastion_harness.boot.pipeline import (
    BootConfig,
    BootPipelineBuilder,
    SignalTarget,
    render_user_data,
)

PROFILES_PATH = Path(__file__).resolve().parent / "boot_profiles.yaml"


def load_profiles(path=PROFILES_PATH) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def build_user_data(profile: dict, args) -> str:
    config = BootConfig(
        install_client_runtime=bool(profile.get("install_client_runtime")),
        fetch_external_trust_bundle=bool(profile.get("fetch_external_trust_bundle")),
        test_script_package_locator=args.test_scripts,
    )
    assets = BootAssets.under(args.asset_root, client_version=args.client_version)
    signal = SignalTarget(stack=args.stack, resource=args.resource, region=args.region)
    return render_user_data(BootPipelineBuilder(assets, signal).build(config))


def parse_args(argv, profiles: dict):
    parser = argparse.ArgumentParser(description="Render the bastion user data script for a test component.")
    parser.add_argument("profile", choices=sorted(profiles))
    parser.add_argument("--asset-root", required=True, help="s3:// or https:// prefix holding setup.zip / utils.zip")
    parser.add_argument("--test-scripts", required=True, help="locator of the component's test script package")
    parser.add_argument("--client-version", default=os.getenv("DEADLINE_VERSION"))
    parser.add_argument("--stack", required=True)
    parser.add_argument("--resource", required=True, help="logical id of the bastion instance")
    parser.add_argument("--region", default=os.getenv("AWS_REGION", "us-west-2"))
    parser.add_argument("--out", help="write to this file instead of stdout")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    profiles = load_profiles()
    args = parse_args(argv, profiles)

    try:
        script = build_user_data(profiles[args.profile], args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(script, encoding="utf-8")
        print(f"Wrote {out}")
    else:
        sys.stdout.write(script)
    return 0


if __name__ == "__main__":
    sys.exit(main())
