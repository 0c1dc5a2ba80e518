"""Unit tests for kubemirror.cache.paths and ResourceIdentity."""

from __future__ import annotations

import pytest

from kubemirror.cache.paths import namespaced, to_gvr
from kubemirror.models.resources import ResourceIdentity, is_sentinel


class TestToGvr:
    def test_three_tokens(self) -> None:
        assert to_gvr("apps/v1/deployments") == ResourceIdentity("apps", "v1", "deployments")

    def test_core_group_two_tokens(self) -> None:
        assert to_gvr("v1/pods") == ResourceIdentity("", "v1", "pods")

    def test_single_token_leaves_resource_empty(self) -> None:
        gvr = to_gvr("pods")
        assert gvr == ResourceIdentity("", "pods", "")
        assert not gvr.is_complete()

    def test_empty_text_never_raises(self) -> None:
        gvr = to_gvr("")
        assert gvr == ResourceIdentity("", "", "")
        assert not gvr.is_complete()

    def test_extra_tokens_are_ignored(self) -> None:
        assert to_gvr("a.io/v1/widgets/extra") == ResourceIdentity("a.io", "v1", "widgets")


class TestResourceIdentity:
    def test_str_drops_empty_group(self) -> None:
        assert str(ResourceIdentity("", "v1", "pods")) == "v1/pods"
        assert str(ResourceIdentity("apps", "v1", "deployments")) == "apps/v1/deployments"

    def test_api_version(self) -> None:
        assert ResourceIdentity("", "v1", "pods").api_version == "v1"
        assert ResourceIdentity("apps", "v1", "deployments").api_version == "apps/v1"

    def test_hashable_map_key(self) -> None:
        seen = {to_gvr("v1/pods"): 1}
        assert seen[ResourceIdentity("", "v1", "pods")] == 1

    @pytest.mark.parametrize(("ns", "expected"), [("", True), ("-", True), ("default", False)])
    def test_is_sentinel(self, ns: str, expected: bool) -> None:
        assert is_sentinel(ns) is expected


class TestNamespaced:
    def test_namespace_and_name(self) -> None:
        assert namespaced("default/pod-abc") == ("default", "pod-abc")

    def test_bare_name(self) -> None:
        assert namespaced("pod-abc") == ("", "pod-abc")

    def test_cluster_scope_prefix(self) -> None:
        assert namespaced("-/node-1") == ("-", "node-1")

    def test_last_slash_wins_and_slashes_trimmed(self) -> None:
        assert namespaced("/a/b/name") == ("a/b", "name")

    def test_trailing_slash_gives_empty_name(self) -> None:
        assert namespaced("default/") == ("default", "")
