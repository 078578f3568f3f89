"""drivenest - Attribution-gated content loader."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydrivenest")
except PackageNotFoundError:
    __version__ = "0+local"
from drivenest.config import DeviceProfile, LoaderConfig
from drivenest.content_host import ContentHost, ContentHostSession, NavigationPolicy
from drivenest.controller import DriveController
from drivenest.exceptions import (
    AttributionError,
    ConfigError,
    DriveNestConfigError,
    DriveNestError,
    PersistenceError,
    TransportError,
)
from drivenest.loader import ContentLoader
from drivenest.models import (
    AppMode,
    AttributionPayload,
    AttributionSource,
    DecisionRule,
    DrivePhase,
    DriveSnapshot,
    StoredConfig,
)
from drivenest.state.decision import decide, decide_phase
from drivenest.state.policy import should_prompt
from drivenest.state.store import ConfigStore, JsonFileStore, MemoryStore

__all__ = [
    "__version__",
    "AppMode",
    "AttributionError",
    "AttributionPayload",
    "AttributionSource",
    "ConfigError",
    "ConfigStore",
    "ContentHost",
    "ContentHostSession",
    "ContentLoader",
    "DecisionRule",
    "DeviceProfile",
    "DriveController",
    "DriveNestConfigError",
    "DriveNestError",
    "DrivePhase",
    "DriveSnapshot",
    "JsonFileStore",
    "LoaderConfig",
    "MemoryStore",
    "NavigationPolicy",
    "PersistenceError",
    "StoredConfig",
    "TransportError",
    "decide",
    "decide_phase",
    "should_prompt",
]
