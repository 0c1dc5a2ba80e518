"""Environment-based configuration loading.

Every setting is read from a ``KUBEMIRROR_*`` variable. Unset variables
fall back to the model defaults; integers are clamped into range rather
than rejected; an unknown log level is an error.
"""

from __future__ import annotations

import os

from kubemirror.models.config import (
    CacheConfig,
    ForwardConfig,
    KubeConfig,
    KubeMirrorConfig,
    LogConfig,
)

_PREFIX = "KUBEMIRROR_"

_VALID_LOG_LEVELS: frozenset[str] = frozenset({"debug", "info", "warning", "error", "critical"})
_TRUTHY: frozenset[str] = frozenset({"1", "true", "yes", "on"})


def _env(name: str, default: str = "") -> str:
    return os.environ.get(_PREFIX + name, default).strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in _TRUTHY


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as err:
        raise ValueError(f"Invalid integer for {_PREFIX}{name}: {raw!r}") from err
    return max(minimum, min(maximum, value))


def _log_level() -> str:
    level = _env("LOG_LEVEL", "info").lower()
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level {level!r}; expected one of {sorted(_VALID_LOG_LEVELS)}")
    return level


def load_config() -> KubeMirrorConfig:
    """Build a :class:`KubeMirrorConfig` from the process environment."""
    return KubeMirrorConfig(
        log=LogConfig(level=_log_level()),
        kube=KubeConfig(
            config_file=_env("KUBECONFIG"),
            context=_env("CONTEXT"),
            in_cluster=_env_bool("IN_CLUSTER"),
        ),
        cache=CacheConfig(
            namespace=_env("NAMESPACE"),
            resync_seconds=_env_int("RESYNC_SECONDS", 600, 60, 3600),
            sync_timeout_seconds=_env_int("SYNC_TIMEOUT", 30, 1, 300),
        ),
        forward=ForwardConfig(address=_env("FORWARD_ADDRESS", "localhost") or "localhost"),
    )
