"""
Configuration tests: defaults, environment overrides, file loading and the
hand-off from configuration to a new game.

Run with: pytest tests/test_config.py -v
"""

import pathlib

import pytest

import daovsdao
from daovsdao.clock import ManualClock
from daovsdao.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    GameConfig,
    config_schema_path,
    get_config,
    get_config_manager,
)
from daovsdao.core import SCHEMA_DIR, WAD
from daovsdao.game import DaoVsDao

from addresses import OWNER


class TestDefaults:
    """Default values seed the documented economics."""

    def test_economics(self):
        config = get_config()
        assert config.economics.slashing_percentage.get() == 20
        assert config.economics.slashing_tax.get() == 10
        assert config.economics.participation_fee.get() == 0
        assert config.economics.percentage_for_referrer.get() == 10
        assert config.economics.yield_percentage.get() == 100
        assert config.economics.initial_supply.get() == WAD
        assert config.economics.spoils_policy.get() == "source"

    def test_cooldowns(self):
        config = get_config()
        assert config.cooldowns.attack_cooldown_seconds.get() == 3600
        assert config.cooldowns.defense_cooldown_seconds.get() == 3600

    def test_singleton(self):
        assert get_config_manager() is ConfigManager()
        assert get_config() is get_config_manager().config

    def test_reset_drops_overrides(self):
        get_config_manager().set("economics.slashing_tax", 30)
        ConfigManager.reset()
        assert get_config().economics.slashing_tax.get() == 10

    def test_defaults_validate(self):
        assert get_config_manager().validate() == []

    def test_to_yaml(self):
        text = GameConfig().to_yaml()
        assert "slashing_percentage: 20" in text
        assert "spoils_policy: source" in text


class TestOverrides:
    """Runtime and environment overrides."""

    def test_set_by_path(self):
        manager = get_config_manager()
        manager.set("economics.slashing_percentage", 25)
        assert manager.get("economics.slashing_percentage") == 25

    def test_string_values_are_coerced(self):
        manager = get_config_manager()
        manager.set("cooldowns.attack_cooldown_seconds", "60")
        assert manager.get("cooldowns.attack_cooldown_seconds") == 60

    def test_invalid_value_rejected(self):
        with pytest.raises(ConfigValidationError):
            get_config_manager().set("economics.slashing_tax", 101)

    def test_invalid_policy_rejected(self):
        with pytest.raises(ConfigValidationError):
            get_config_manager().set("economics.spoils_policy", "random")

    @pytest.mark.parametrize("path", ["economics.nope", "nope.slashing_tax", "economics"])
    def test_invalid_path(self, path):
        with pytest.raises(ConfigError):
            get_config_manager().set(path, 1)

    def test_environment_wins(self, monkeypatch):
        manager = get_config_manager()
        manager.set("economics.slashing_percentage", 25)
        monkeypatch.setenv("DVD_SLASHING_PERCENTAGE", "40")
        assert manager.get("economics.slashing_percentage") == 40

    def test_environment_bool(self, monkeypatch):
        monkeypatch.setenv("DVD_AUDIT_ENABLED", "off")
        assert get_config().observability.audit_enabled.get() is False

    def test_invalid_environment_reported(self, monkeypatch):
        monkeypatch.setenv("DVD_SLASHING_TAX", "150")
        errors = get_config_manager().validate()
        assert errors == ["economics.slashing_tax: validation failed for value 150 (from DVD_SLASHING_TAX)"]

    def test_uncoercible_environment_reported(self, monkeypatch):
        monkeypatch.setenv("DVD_ATTACK_COOLDOWN", "soon")
        errors = get_config_manager().validate()
        assert len(errors) == 1
        assert errors[0].startswith("cooldowns.attack_cooldown_seconds:")


class TestFileLoading:
    """YAML files are validated against the configuration schema."""

    def test_load(self, tmp_path):
        path = tmp_path / "daovsdao.yaml"
        path.write_text(
            "economics:\n"
            "  slashing_percentage: 30\n"
            "  spoils_policy: worth\n"
            "cooldowns:\n"
            "  defense_cooldown_seconds: 600\n",
            encoding="utf-8",
        )
        manager = get_config_manager()
        manager.load_from_file(path)
        assert manager.get("economics.slashing_percentage") == 30
        assert manager.get("economics.spoils_policy") == "worth"
        assert manager.get("cooldowns.defense_cooldown_seconds") == 600

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            get_config_manager().load_from_file(tmp_path / "absent.yaml")

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("economics:\n  slashing_speed: 3\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="slashing_speed"):
            get_config_manager().load_from_file(path)

    def test_out_of_range(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("economics:\n  slashing_tax: 120\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="slashing_tax"):
            get_config_manager().load_from_file(path)
        assert get_config().economics.slashing_tax.get() == 10

    def test_from_dict_unknown_section(self):
        with pytest.raises(ConfigError, match="Unknown config key"):
            GameConfig.from_dict({"network": {"port": 1}})


class TestSchemaExport:
    def test_schemas_ship_inside_package(self):
        package_dir = pathlib.Path(daovsdao.__file__).resolve().parent
        assert SCHEMA_DIR == package_dir / "schemas"
        names = sorted(p.name for p in SCHEMA_DIR.glob("*.schema.json"))
        assert names == [
            "coords.schema.json", "game-config.schema.json",
            "game-state.schema.json", "scenario.schema.json",
        ]
        assert config_schema_path().is_file()

    def test_export_includes_env_vars(self):
        schema = get_config_manager().export_schema()
        slashing = schema["properties"]["economics"]["slashing_percentage"]
        assert slashing["env_var"] == "DVD_SLASHING_PERCENTAGE"
        assert slashing["type"] == "int"
        assert slashing["default"] == "20"


class TestGameSeeding:
    """A new game copies its parameters from configuration once."""

    def test_game_uses_config(self):
        config = GameConfig.from_dict({
            "economics": {"slashing_percentage": 35, "initial_supply": 5 * WAD},
            "cooldowns": {"attack_cooldown_seconds": 10},
        })
        game = DaoVsDao(OWNER, config=config, clock=ManualClock(0))
        assert game.params.slashing_percentage == 35
        assert game.params.attack_cooldown_seconds == 10
        assert game.balance_of(OWNER) == 5 * WAD

    def test_later_config_changes_do_not_leak(self):
        config = GameConfig()
        game = DaoVsDao(OWNER, config=config, clock=ManualClock(0))
        config.economics.slashing_percentage.set(90)
        assert game.params.slashing_percentage == 20

    def test_global_config_is_the_fallback(self):
        get_config_manager().set("economics.slashing_tax", 7)
        game = DaoVsDao(OWNER, clock=ManualClock(0))
        assert game.params.slashing_tax == 7

    def test_zero_initial_supply(self):
        config = GameConfig.from_dict({"economics": {"initial_supply": 0}})
        game = DaoVsDao(OWNER, config=config, clock=ManualClock(0))
        assert game.total_supply == 0

    def test_out_of_range_environment_rejects_game(self, monkeypatch):
        monkeypatch.setenv("DVD_SLASHING_PERCENTAGE", "150")
        with pytest.raises(ConfigValidationError, match="DVD_SLASHING_PERCENTAGE"):
            DaoVsDao(OWNER, clock=ManualClock(0))

    def test_out_of_range_environment_rejects_read(self, monkeypatch):
        monkeypatch.setenv("DVD_DEFENSE_COOLDOWN", "-5")
        with pytest.raises(ConfigValidationError, match="validation failed for value -5"):
            get_config().cooldowns.defense_cooldown_seconds.get()
