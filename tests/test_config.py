"""
Configuration loader tests.

Coverage:
  - section defaults and from_dict parsing
  - TOML files, missing files, invalid TOML
  - GRAVITY_HARNESS_* environment overrides
  - validation errors
"""

import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from gravity_harness.config.loader import HarnessConfig, load_config
from gravity_harness.exceptions import ConfigurationError

SAMPLE = """
[chain]
cosmos_rest_url = "http://validator0:1317"
erc20_address = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

[timing]
poll_interval = 2
halt_deadline = 45

[scenario]
validator_count = 5
minority_indices = [3, 4]
redistribute_stake = false

[logging]
level = "DEBUG"
"""


class TestDefaults:

    def test_defaults_validate(self):
        config = HarnessConfig()
        assert config.validate()
        assert config.scenario.minority_indices == [1, 2]
        assert config.chain.address_prefix == "gravity"

    def test_from_dict(self):
        config = HarnessConfig.from_dict({"scenario": {"minority_indices": ["2"], "vote_quorum": "0.75"}})
        assert config.scenario.minority_indices == [2]
        assert config.scenario.vote_quorum == 0.75
        assert config.timing.poll_interval == 10.0


class TestFiles:

    def test_load_file(self, tmp_path):
        path = tmp_path / "harness.toml"
        path.write_text(SAMPLE)
        config = load_config(str(path))
        assert config.chain.cosmos_rest_url == "http://validator0:1317"
        assert config.timing.poll_interval == 2.0
        assert config.timing.halt_deadline == 45.0
        assert config.scenario.validator_count == 5
        assert config.scenario.minority_indices == [3, 4]
        assert config.scenario.redistribute_stake is False
        assert config.logging.level == "DEBUG"
        assert config.validate()

    def test_missing_file_uses_defaults(self, tmp_path):
        config = HarnessConfig.from_file(str(tmp_path / "absent.toml"))
        assert config.scenario.validator_count == 3

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[chain\nprefix = ")
        with pytest.raises(ConfigurationError):
            HarnessConfig.from_file(str(path))

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "harness.toml"
        path.write_text(SAMPLE)
        monkeypatch.setenv("GRAVITY_HARNESS_CONFIG", str(path))
        assert load_config().scenario.validator_count == 5


class TestEnvironment:

    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GRAVITY_HARNESS_MINORITY", "1, 2, 3")
        monkeypatch.setenv("GRAVITY_HARNESS_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("GRAVITY_HARNESS_REDISTRIBUTE_STAKE", "no")
        monkeypatch.setenv("GRAVITY_HARNESS_LOG_LEVEL", "WARNING")
        config = HarnessConfig.from_file(str(tmp_path / "absent.toml"))
        assert config.scenario.minority_indices == [1, 2, 3]
        assert config.timing.poll_interval == 0.5
        assert config.scenario.redistribute_stake is False
        assert config.logging.level == "WARNING"

    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        path = tmp_path / "harness.toml"
        path.write_text(SAMPLE)
        monkeypatch.setenv("GRAVITY_HARNESS_COSMOS_REST_URL", "http://override:1317")
        assert load_config(str(path)).chain.cosmos_rest_url == "http://override:1317"


class TestValidation:

    @pytest.mark.parametrize("scenario", [
        {"validator_count": 2, "minority_indices": [1]},
        {"minority_indices": []},
        {"minority_indices": [0, 1]},
        {"minority_indices": [1, 2, 3]},
        {"minority_indices": [5]},
        {"vote_quorum": 0},
        {"deposit_amount": 0},
    ])
    def test_invalid_scenario(self, scenario):
        with pytest.raises(ConfigurationError):
            HarnessConfig.from_dict({"scenario": scenario}).validate()

    def test_invalid_timing(self):
        with pytest.raises(ConfigurationError):
            HarnessConfig.from_dict({"timing": {"halt_deadline": -1}}).validate()
        with pytest.raises(ConfigurationError):
            HarnessConfig.from_dict({"timing": {"poll_interval": 0}}).validate()

    def test_invalid_log_level(self):
        with pytest.raises(ConfigurationError):
            HarnessConfig.from_dict({"logging": {"level": "LOUD"}}).validate()

    def test_to_dict(self):
        data = HarnessConfig().to_dict()
        assert set(data) == {"chain", "timing", "scenario", "logging"}
        assert data["scenario"]["minority_indices"] == [1, 2]
