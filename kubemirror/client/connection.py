"""API server connection and authorization checks.

The :class:`Connection` protocol is what the cache factory consumes: a
dial handle for building watch caches and a ``can_i`` authorization gate.
:class:`APIClient` implements it on top of kubernetes_asyncio.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import config as k8s_config

from kubemirror.cache.paths import to_gvr
from kubemirror.errors import AuthCheckFailedError, DialError
from kubemirror.models.resources import CLUSTER_SCOPE
from kubemirror.observability.logging import get_logger

if TYPE_CHECKING:
    from kubemirror.models.config import KubeConfig


@runtime_checkable
class Connection(Protocol):
    """What the cache factory needs from the API server connection."""

    def dial(self) -> Any:
        """Return the handle used to build watch caches."""
        ...

    async def can_i(self, ns: str, gvr: str, verbs: list[str]) -> bool:
        """Return True if the current identity may use every verb on ``gvr`` in ``ns``."""
        ...


def make_sar(ns: str, gvr: str, verb: str) -> k8s_client.V1SelfSubjectAccessReview:
    """Build a SelfSubjectAccessReview for one verb.

    The cluster-scope sentinel is sent as the empty namespace.
    """
    if ns == CLUSTER_SCOPE:
        ns = ""
    res = to_gvr(gvr)
    return k8s_client.V1SelfSubjectAccessReview(
        spec=k8s_client.V1SelfSubjectAccessReviewSpec(
            resource_attributes=k8s_client.V1ResourceAttributes(
                namespace=ns,
                group=res.group,
                version=res.version,
                resource=res.resource,
                verb=verb,
            )
        )
    )


class APIClient:
    """kubernetes_asyncio backed :class:`Connection`.

    Lifecycle::

        conn = APIClient(config.kube)
        await conn.connect()
        api = conn.dial()
        ...
        await conn.close()
    """

    def __init__(self, kube: KubeConfig | None = None) -> None:
        self._kube = kube
        self._configuration: k8s_client.Configuration | None = None
        self._api_client: k8s_client.ApiClient | None = None
        self._log = get_logger("client.connection")

    async def connect(self) -> None:
        """Load cluster credentials.

        In-cluster service account credentials are used when requested or
        when no kubeconfig can be loaded. Raises :class:`DialError` if
        neither source works.
        """
        configuration = k8s_client.Configuration()
        in_cluster = self._kube is not None and self._kube.in_cluster
        try:
            if in_cluster:
                k8s_config.load_incluster_config(client_configuration=configuration)  # type: ignore[no-untyped-call]
                self._log.info("k8s client configured from in-cluster service account")
            else:
                await k8s_config.load_kube_config(
                    config_file=(self._kube.config_file or None) if self._kube else None,
                    context=(self._kube.context or None) if self._kube else None,
                    client_configuration=configuration,
                )
                self._log.info("k8s client configured from kubeconfig")
        except k8s_config.ConfigException as exc:
            if in_cluster:
                raise DialError(f"unable to load in-cluster config: {exc}") from exc
            try:
                k8s_config.load_incluster_config(client_configuration=configuration)  # type: ignore[no-untyped-call]
            except k8s_config.ConfigException as incluster_exc:
                raise DialError(f"unable to load kubeconfig: {exc}") from incluster_exc
            self._log.info("k8s client configured from in-cluster service account")
        self._configuration = configuration
        self._api_client = None

    def dial(self) -> k8s_client.ApiClient:
        """Return the shared ApiClient, building it on first use."""
        if self._api_client is not None:
            return self._api_client
        if self._configuration is None:
            raise DialError("connection is not configured; call connect() first")
        try:
            self._api_client = k8s_client.ApiClient(configuration=self._configuration)
        except Exception as exc:
            raise DialError(f"unable to connect to api server: {exc}") from exc
        return self._api_client

    async def can_i(self, ns: str, gvr: str, verbs: list[str]) -> bool:
        """Check each verb in order; stop at the first one denied.

        Raises :class:`AuthCheckFailedError` if a review cannot be completed.
        """
        self._log.debug("auth_check", namespace=ns, gvr=gvr, verbs=verbs)
        try:
            api = k8s_client.AuthorizationV1Api(self.dial())
        except DialError as exc:
            raise AuthCheckFailedError(str(exc)) from exc

        for verb in verbs:
            try:
                resp = await api.create_self_subject_access_review(body=make_sar(ns, gvr, verb))
            except Exception as exc:
                self._log.warning("auth_check_failed", namespace=ns, gvr=gvr, verb=verb, error=str(exc))
                raise AuthCheckFailedError(f"unable to check {verb} access on {gvr}: {exc}") from exc
            status = getattr(resp, "status", None)
            if not bool(getattr(status, "allowed", False)):
                self._log.debug("auth_denied", namespace=ns, gvr=gvr, verb=verb)
                return False
        return True

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None
