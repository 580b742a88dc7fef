import generate

BASE_ARGS = [
    "--asset-root", "s3://assets/bastion",
    "--test-scripts", "s3://assets/tests/repo.zip",
    "--client-version", "10.1.9.2",
    "--stack", "RFDKInteg-DL-TestingTierx",
    "--resource", "Bastion",
    "--region", "us-east-1",
]


def test_profiles_cover_components():
    assert set(generate.load_profiles()) == {"repository", "render_queue", "worker_fleet", "worker_fleet_https"}


def test_repository_profile_to_stdout(capsys):
    assert generate.main(["repository"] + BASE_ARGS) == 0

    script = capsys.readouterr().out
    assert script.startswith("#!/bin/bash\n")
    assert "rds-combined-ca-bundle.pem" in script
    assert "install_deadline_client.sh" not in script
    assert "--stack RFDKInteg-DL-TestingTierx --resource Bastion --region us-east-1" in script


def test_render_queue_profile_to_file(tmp_path):
    out = tmp_path / "user-data.sh"
    assert generate.main(["render_queue"] + BASE_ARGS + ["--out", str(out)]) == 0
    assert "DeadlineClient-10.1.9.2-linux-x64-installer.run" in out.read_text(encoding="utf-8")


def test_client_profile_without_version(capsys):
    args = [a for a in BASE_ARGS]
    args[args.index("--client-version") + 1] = ""
    assert generate.main(["worker_fleet"] + args) == 1
    assert "installer" in capsys.readouterr().err
