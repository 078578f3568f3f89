"""Loader configuration for drivenest."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from drivenest._constants import (
    ATTRIBUTION_URL,
    IGNITION_DELAY_S,
    MERGE_DEBOUNCE_S,
    PERMISSION_COOLDOWN_S,
    REDIRECT_LIMIT,
)
from drivenest.exceptions import DriveNestConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class DeviceProfile:
    """Device identity facts sent to the configuration endpoint.

    ``device_id`` doubles as the attribution SDK's ``af_id``.
    """

    device_id: str = "0000000000000-0000000"
    os: str = "iOS"
    push_token: str = ""


@dataclasses.dataclass(frozen=True)
class LoaderConfig:
    """Loader configuration.

    Parameters
    ----------
    dev_key : str
        Attribution SDK developer key, sent as ``devkey``.
    store_id : str
        App store identifier (digits only, without the ``id`` prefix).
    bundle_id : str
        Application bundle identifier.
    firebase_project_id : str
        Push project identifier forwarded to the configuration endpoint.
    config_url : str
        Configuration endpoint that answers ``{"ok": true, "url": ...}``.
    attribution_url : str
        Base URL of the organic-attribution endpoint.
    locale : str
        Locale forwarded to the configuration endpoint (e.g. ``"en"``).
    ignition_delay : float
        Seconds to wait before fetching organic attribution on first launch.
    merge_debounce : float
        Seconds to wait for a deferred deep link after attribution arrives.
    permission_cooldown : float
        Minimum seconds between two notification permission prompts.
    redirect_limit : int
        Server redirects tolerated on one navigation before aborting.
    request_timeout : float
        Total timeout in seconds for each outbound HTTP request.
    connectivity_enabled : bool
        Start the background reachability monitor.
    connectivity_host, connectivity_port : str, int
        Endpoint probed by the reachability monitor.
    connectivity_interval : float
        Seconds between two reachability probes.
    push_broker : str or None
        ``host[:port]`` of the MQTT broker delivering push payloads.
        The push listener is disabled when unset.
    push_topic : str
        Topic the push listener subscribes to.
    push_keepalive : int
        MQTT keepalive in seconds.
    device : DeviceProfile
        Device identity fields.
    """

    dev_key: str
    store_id: str
    bundle_id: str
    config_url: str
    firebase_project_id: str = ""
    attribution_url: str = ATTRIBUTION_URL
    locale: str = "en"
    ignition_delay: float = IGNITION_DELAY_S
    merge_debounce: float = MERGE_DEBOUNCE_S
    permission_cooldown: float = PERMISSION_COOLDOWN_S
    redirect_limit: int = REDIRECT_LIMIT
    request_timeout: float = 30.0
    connectivity_enabled: bool = True
    connectivity_host: str = "1.1.1.1"
    connectivity_port: int = 443
    connectivity_interval: float = 2.0
    push_broker: str | None = None
    push_topic: str = "drivenest/push"
    push_keepalive: int = 120
    device: DeviceProfile = dataclasses.field(default_factory=DeviceProfile)

    def __post_init__(self) -> None:
        if not self.config_url.startswith(("http://", "https://")):
            raise DriveNestConfigError(f"config_url must be an http(s) URL, got {self.config_url!r}")
        if self.ignition_delay < 0 or self.merge_debounce < 0:
            raise DriveNestConfigError("timer delays must be non-negative")
        if self.redirect_limit < 1:
            raise DriveNestConfigError(f"redirect_limit must be positive, got {self.redirect_limit}")

    @classmethod
    def from_env(cls, **overrides: Any) -> LoaderConfig:
        """Create configuration from environment variables.

        Reads ``DRIVENEST_DEV_KEY``, ``DRIVENEST_STORE_ID``,
        ``DRIVENEST_BUNDLE_ID``, ``DRIVENEST_CONFIG_URL`` and optional
        ``DRIVENEST_*`` variables. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        device_kwargs: dict[str, str] = {}
        _ENV_DEVICE_MAP = {
            "DRIVENEST_DEVICE_ID": "device_id",
            "DRIVENEST_OS": "os",
            "DRIVENEST_PUSH_TOKEN": "push_token",
        }
        for env_key, field_name in _ENV_DEVICE_MAP.items():
            val = env.get(env_key)
            if val is not None:
                device_kwargs[field_name] = val

        device_overrides = overrides.pop("device", None)
        if isinstance(device_overrides, dict):
            device_kwargs.update(device_overrides)
        elif isinstance(device_overrides, DeviceProfile):
            device_kwargs = dataclasses.asdict(device_overrides)

        device = DeviceProfile(**device_kwargs) if device_kwargs else DeviceProfile()

        _ENV_CONFIG_MAP = {
            "DRIVENEST_DEV_KEY": "dev_key",
            "DRIVENEST_STORE_ID": "store_id",
            "DRIVENEST_BUNDLE_ID": "bundle_id",
            "DRIVENEST_FIREBASE_PROJECT_ID": "firebase_project_id",
            "DRIVENEST_CONFIG_URL": "config_url",
            "DRIVENEST_ATTRIBUTION_URL": "attribution_url",
            "DRIVENEST_LOCALE": "locale",
            "DRIVENEST_CONNECTIVITY_HOST": "connectivity_host",
            "DRIVENEST_PUSH_BROKER": "push_broker",
            "DRIVENEST_PUSH_TOPIC": "push_topic",
        }
        config_kwargs: dict[str, Any] = {"device": device}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "DRIVENEST_IGNITION_DELAY": "ignition_delay",
            "DRIVENEST_MERGE_DEBOUNCE": "merge_debounce",
            "DRIVENEST_PERMISSION_COOLDOWN": "permission_cooldown",
            "DRIVENEST_REQUEST_TIMEOUT": "request_timeout",
            "DRIVENEST_CONNECTIVITY_INTERVAL": "connectivity_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = float(val)
                except ValueError as exc:
                    raise DriveNestConfigError(f"{env_key} must be numeric, got {val!r}") from exc

        _ENV_INT_MAP = {
            "DRIVENEST_REDIRECT_LIMIT": "redirect_limit",
            "DRIVENEST_CONNECTIVITY_PORT": "connectivity_port",
            "DRIVENEST_PUSH_KEEPALIVE": "push_keepalive",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise DriveNestConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "connectivity_enabled" not in overrides:
            config_kwargs["connectivity_enabled"] = _env_bool(env.get("DRIVENEST_CONNECTIVITY_ENABLED"), True)

        config_kwargs.update(overrides)

        missing = [name for name in ("dev_key", "store_id", "bundle_id", "config_url") if name not in config_kwargs]
        if missing:
            raise DriveNestConfigError(f"Missing required configuration: {', '.join(missing)}")

        return cls(**config_kwargs)
