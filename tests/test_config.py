from __future__ import annotations

import os

import pytest

from drivenest._constants import ATTRIBUTION_URL
from drivenest.config import DeviceProfile, LoaderConfig
from drivenest.exceptions import DriveNestConfigError

_REQUIRED = {
    "DRIVENEST_DEV_KEY": "DEVKEY",
    "DRIVENEST_STORE_ID": "6740000000",
    "DRIVENEST_BUNDLE_ID": "com.example.nest",
    "DRIVENEST_CONFIG_URL": "https://config.example.com/config.php",
}


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in [k for k in os.environ if k.startswith("DRIVENEST_")]:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_from_env_reads_required_and_defaults(env: pytest.MonkeyPatch) -> None:
    for key, value in _REQUIRED.items():
        env.setenv(key, value)

    config = LoaderConfig.from_env()

    assert config.dev_key == "DEVKEY"
    assert config.attribution_url == ATTRIBUTION_URL
    assert config.ignition_delay == 5.0
    assert config.merge_debounce == 10.0
    assert config.permission_cooldown == 259200
    assert config.redirect_limit == 70
    assert config.connectivity_enabled is True
    assert config.push_broker is None
    assert config.device == DeviceProfile()


def test_from_env_parses_typed_values_and_overrides_win(env: pytest.MonkeyPatch) -> None:
    for key, value in _REQUIRED.items():
        env.setenv(key, value)
    env.setenv("DRIVENEST_IGNITION_DELAY", "1.5")
    env.setenv("DRIVENEST_REDIRECT_LIMIT", "12")
    env.setenv("DRIVENEST_CONNECTIVITY_ENABLED", "no")
    env.setenv("DRIVENEST_PUSH_TOKEN", "PUSH")
    env.setenv("DRIVENEST_LOCALE", "fr")

    config = LoaderConfig.from_env(locale="de", redirect_limit=3)

    assert config.ignition_delay == 1.5
    assert config.redirect_limit == 3
    assert config.locale == "de"
    assert config.connectivity_enabled is False
    assert config.device.push_token == "PUSH"


def test_from_env_missing_required(env: pytest.MonkeyPatch) -> None:
    env.setenv("DRIVENEST_DEV_KEY", "DEVKEY")
    with pytest.raises(DriveNestConfigError, match="store_id"):
        LoaderConfig.from_env()


def test_from_env_rejects_non_numeric(env: pytest.MonkeyPatch) -> None:
    for key, value in _REQUIRED.items():
        env.setenv(key, value)
    env.setenv("DRIVENEST_IGNITION_DELAY", "soon")
    with pytest.raises(DriveNestConfigError, match="DRIVENEST_IGNITION_DELAY"):
        LoaderConfig.from_env()


@pytest.mark.parametrize(
    "overrides",
    [
        {"config_url": "ftp://config.example.com"},
        {"ignition_delay": -1.0},
        {"redirect_limit": 0},
    ],
)
def test_invalid_values_rejected(overrides: dict[str, object]) -> None:
    values: dict[str, object] = {
        "dev_key": "DEVKEY",
        "store_id": "1",
        "bundle_id": "com.example.nest",
        "config_url": "https://config.example.com",
    }
    values.update(overrides)
    with pytest.raises(DriveNestConfigError):
        LoaderConfig(**values)  # type: ignore[arg-type]
