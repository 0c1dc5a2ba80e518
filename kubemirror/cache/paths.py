"""Textual resource identifier and object path parsing."""

from __future__ import annotations

from kubemirror.models.resources import ResourceIdentity


def to_gvr(gvr: str) -> ResourceIdentity:
    """Resolve ``group/version/resource`` or ``version/resource`` text.

    Never raises. Missing positions come back as empty strings so that an
    unknown or malformed identity only fails once it is used against the
    API server (or is rejected as incomplete by the scope cache).
    """
    tokens = gvr.split("/")
    if len(tokens) < 3:
        tokens = ["", *tokens]
    tokens += [""] * (3 - len(tokens))
    return ResourceIdentity(group=tokens[0], version=tokens[1], resource=tokens[2])


def namespaced(path: str) -> tuple[str, str]:
    """Split ``namespace/name`` into its parts.

    Everything up to the last ``/`` is the namespace (with slashes trimmed
    off both ends); a bare name has an empty namespace.
    """
    ns, _, name = path.rpartition("/")
    return ns.strip("/"), name
