"""Port-forward sessions and their registry."""

from kubemirror.forward.registry import PortForwardRegistry
from kubemirror.forward.session import ForwardSession, PortForward, forward_path

__all__ = ["ForwardSession", "PortForward", "PortForwardRegistry", "forward_path"]
