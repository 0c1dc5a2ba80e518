"""Configuration models.

Populated from ``KUBEMIRROR_*`` environment variables by
:func:`kubemirror.config.load_config`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LogConfig(BaseModel):
    level: str = "info"


class KubeConfig(BaseModel):
    """How to reach the API server."""

    config_file: str = ""
    context: str = ""
    in_cluster: bool = False


class CacheConfig(BaseModel):
    """Watch cache tuning.

    ``namespace`` is the scope activated at startup; the empty string
    selects the all-namespaces cache.
    """

    namespace: str = ""
    resync_seconds: int = Field(default=600, ge=60, le=3600)
    sync_timeout_seconds: int = Field(default=30, ge=1, le=300)


class ForwardConfig(BaseModel):
    address: str = "localhost"


class KubeMirrorConfig(BaseModel):
    log: LogConfig = Field(default_factory=LogConfig)
    kube: KubeConfig = Field(default_factory=KubeConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    forward: ForwardConfig = Field(default_factory=ForwardConfig)
