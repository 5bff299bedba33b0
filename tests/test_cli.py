"""
CLI tests (click.testing.CliRunner).

Coverage:
  - keys: generated addresses, private key export
  - simulate: successful run, failed run exit status, key file input
"""

import json
import os
import sys

from click.testing import CliRunner

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from gravity_harness.cli.main import cli


class TestKeys:

    def test_addresses_only(self):
        result = CliRunner().invoke(cli, ["keys", "--count", "4"])
        assert result.exit_code == 0
        validators = json.loads(result.output)["validators"]
        assert len(validators) == 4
        assert validators[0]["orchestrator"].startswith("gravity1")
        assert validators[0]["valoper"].startswith("gravityvaloper1")
        assert "validator_key" not in validators[0]

    def test_invalid_count(self):
        result = CliRunner().invoke(cli, ["keys", "--count", "0"])
        assert result.exit_code != 0

    def test_private_keys_to_file(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["keys", "--show-private", "--output", "validators.json"])
            assert result.exit_code == 0
            with open("validators.json") as f:
                validators = json.load(f)["validators"]
        assert len(validators[0]["orchestrator_key"]) == 66


class TestSimulate:

    def test_successful_run(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["simulate", "--fast", "--initial-nonce", "4"])
        assert result.exit_code == 0, result.output
        assert '"state": "COMPLETED"' in result.output

    def test_failed_run_exits_nonzero(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["simulate", "--fast", "--no-redistribute"])
        assert result.exit_code == 1
        assert '"failedCheck": "faulty minority"' in result.output

    def test_invalid_minority(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["simulate", "--fast", "--minority", "0,1"])
        assert result.exit_code != 0
        assert "Invalid configuration" in result.output

    def test_keys_file(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["keys", "--count", "5", "--show-private", "--output", "keys.json"])
            result = runner.invoke(cli, ["simulate", "--fast", "--keys", "keys.json", "--minority", "2,3,4"])
        assert result.exit_code == 0, result.output
        assert '"v4"' in result.output
