"""
CLI Test Suite

Coverage:
  - show-config: resolved configuration printed as JSON
  - replay: per-step JSON results, state root, rejected count,
    --stop-on-error, malformed input
"""

import json

import pytest
from click.testing import CliRunner

from vegov.cli.main import cli

CONFIG = """
[governance]
admin = "admin"

[[emission]]
app_id = 1
total_rewards = 1000000
emission_rate = "0.1"
"""

HOST = {
    "apps": [{"appId": 1, "name": "harbor", "govTokenId": 1}],
    "assets": {"1": "ucmdx", "2": "uusd"},
    "totalSupply": {"1": 10000},
    "eligiblePairs": {"1": [1, 2]},
    "whitelisted": ["uusd"],
}

STEPS = [
    {"sender": "alice", "time": 0, "height": 1,
     "funds": [{"denom": "ucmdx", "amount": "100"}],
     "op": "LOCK", "app_id": 1, "tier": "T4"},
    {"sender": "alice", "time": 0, "height": 2, "op": "RAISE_PROPOSAL", "app_id": 1},
    {"sender": "admin", "time": 0, "height": 3, "op": "RAISE_PROPOSAL", "app_id": 1},
]


@pytest.fixture
def files(tmp_path):
    config = tmp_path / "vegov.toml"
    config.write_text(CONFIG)
    host = tmp_path / "host.json"
    host.write_text(json.dumps(HOST))
    ops = tmp_path / "ops.json"
    ops.write_text(json.dumps(STEPS))
    return {"config": str(config), "host": str(host), "ops": str(ops)}


def _results(output):
    return [json.loads(line) for line in output.splitlines() if line.startswith('{"step"')]


class TestShowConfig:

    def test_prints_config(self, files):
        result = CliRunner().invoke(cli, ["show-config", "--config", files["config"]])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["governance"]["admin"] == "admin"
        assert data["emissions"][0]["appId"] == 1

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('[foundation]\nratio = "7"\n')
        result = CliRunner().invoke(cli, ["show-config", "--config", str(path)])
        assert result.exit_code != 0
        assert "foundation.ratio" in result.output


class TestReplay:

    def test_replays_every_step(self, files):
        result = CliRunner().invoke(
            cli, ["replay", files["ops"], "--host", files["host"], "--config", files["config"]],
        )
        assert result.exit_code == 0, result.output
        steps = _results(result.output)
        assert [s["step"] for s in steps] == [1, 2, 3]
        assert [s["success"] for s in steps] == [True, False, True]
        assert steps[1]["errorKind"] == "unauthorized"
        assert steps[2]["data"]["proposal"]["id"] == 1
        assert "State root:" in result.output
        assert "1 operation(s) rejected" in result.output

    def test_stop_on_error(self, files):
        result = CliRunner().invoke(
            cli,
            ["replay", files["ops"], "--host", files["host"], "--config", files["config"],
             "--stop-on-error"],
        )
        assert result.exit_code == 0, result.output
        assert [s["step"] for s in _results(result.output)] == [1, 2]

    def test_unknown_operation(self, files, tmp_path):
        ops = tmp_path / "unknown.json"
        ops.write_text(json.dumps([{"sender": "a", "time": 0, "height": 1, "op": "MINT"}]))
        result = CliRunner().invoke(cli, ["replay", str(ops), "--config", files["config"]])
        assert result.exit_code != 0
        assert "Step 1" in result.output

    def test_invalid_json(self, files, tmp_path):
        ops = tmp_path / "broken.json"
        ops.write_text("[{")
        result = CliRunner().invoke(cli, ["replay", str(ops), "--config", files["config"]])
        assert result.exit_code != 0
        assert "invalid JSON" in result.output

    def test_ops_must_be_a_list(self, files, tmp_path):
        ops = tmp_path / "object.json"
        ops.write_text("{}")
        result = CliRunner().invoke(cli, ["replay", str(ops), "--config", files["config"]])
        assert result.exit_code != 0
        assert "JSON list" in result.output
