"""子树加载器测试（端到端构建依赖树）"""

from __future__ import annotations

import logging
import os
import time

import pytest

from pkgtree.core.config import Config
from pkgtree.core.exceptions import FetchError
from pkgtree.core.models import USER_MARKER, RequestedSpec
from pkgtree.core.tree.dump import tree_to_dict
from pkgtree.core.tree.loader import DepLoader
from pkgtree.core.tree.nodes import flat_name


def _names(node) -> list[str]:
    return [c.name for c in node.children]


def _child(node, name: str):
    return next(c for c in node.children if c.name == name)


def _requires(root) -> dict[str, list[str]]:
    return {flat_name(n): [r.name for r in n.requires] for n in root.walk()}


class TestLoadDeps:
    """load_deps 的去重与放置"""

    def test_fresh_dependency_attaches_under_root(self, trees, make_loader) -> None:
        loader = make_loader({"x": {"versions": {"1.0.0": {}, "1.5.0": {}, "2.0.0": {}}}})
        root = trees.root({"x": "^1.0.0"})

        loader.load_deps(root)

        assert _names(root) == ["x"]
        x = root.children[0]
        assert x.version == "1.5.0"
        assert x.requested == RequestedSpec(name="x", type="range", spec="^1.0.0")
        assert x.required_by == ["/"]
        assert x.path == os.path.join(root.path, "node_modules", "x")
        assert x.loaded is True
        assert root.requires == [x]

    def test_compatible_ancestor_copy_is_reused(self, trees, make_loader) -> None:
        loader = make_loader({"x": {"versions": {"1.2.0": {}, "1.9.0": {}}}})
        root = trees.root({"x": "^1.0.0", "a": "1.0.0"})
        x = trees.add(root, "x", "1.2.0", requested="^1.0.0")
        a = trees.add(root, "a", "1.0.0", {"g": "1.0.0"})
        g = trees.add(a, "g", "1.0.0", {"x": "^1.0.0"}, loaded=False)

        loader.load_deps(g)

        assert sum(1 for n in root.walk() if n.name == "x") == 1
        assert g.children == []
        assert x.version == "1.2.0"
        assert x.requested.spec == "^1.0.0"
        assert "/a/g" in x.required_by
        assert g.requires == [x]
        assert a.phantom_children == {"x": "1.2.0"}

    def test_conflicting_version_nests_below_blocking_ancestor(
        self, trees, make_loader,
    ) -> None:
        loader = make_loader({"x": {"versions": {"1.0.0": {}, "2.1.0": {}}}})
        root = trees.root({"x": "1.0.0", "a": "1.0.0"})
        x1 = trees.add(root, "x", "1.0.0", requested="1.0.0")
        a = trees.add(root, "a", "1.0.0", {"g": "1.0.0"})
        g = trees.add(a, "g", "1.0.0", {"x": "^2.0.0"}, loaded=False)

        loader.load_deps(g)

        assert _names(a) == ["g", "x"]
        x2 = _child(a, "x")
        assert x2 is not x1
        assert x2.version == "2.1.0"
        assert x2.required_by == ["/a/g"]
        assert x2.path == os.path.join(a.path, "node_modules", "x")
        assert x1.version == "1.0.0"
        assert x1.requested.spec == "1.0.0"
        assert x1.required_by == []

    def test_second_requirer_widens_requested_spec(self, trees, make_loader) -> None:
        loader = make_loader({
            "x": {"versions": {"1.2.5": {}}},
            "a": {"versions": {"1.0.0": {"dependencies": {"x": "~1.2.0"}}}},
        })
        root = trees.root({"x": "^1.0.0", "a": "1.0.0"})

        loader.load_deps(root)

        assert _names(root) == ["a", "x"]
        x = _child(root, "x")
        assert x.requested.type == "range"
        assert x.requested.spec == "^1.0.0 ~1.2.0"
        assert x.required_by == ["/", "/a"]

    def test_transitive_dependency_is_hoisted(self, trees, make_loader) -> None:
        loader = make_loader({
            "a": {"versions": {"1.0.0": {"dependencies": {"b": "^1.0.0"}}}},
            "b": {"versions": {"1.0.0": {"dependencies": {"c": "*"}}}},
            "c": {"versions": {"3.0.0": {}}},
        })
        root = trees.root({"a": "^1.0.0"})

        loader.load_deps(root)

        assert _names(root) == ["a", "b", "c"]
        assert _child(root, "b").required_by == ["/a"]
        assert _child(root, "c").required_by == ["/b"]
        assert all(n.loaded for n in root.walk())

    def test_already_loaded_is_noop(self, trees, make_loader) -> None:
        loader = make_loader({})
        root = trees.root({"missing": "^1.0.0"})
        root.loaded = True
        assert loader.load_deps(root) is root
        assert root.children == []

    def test_bundled_subtree_is_attached_as_is(self, trees, make_loader) -> None:
        loader = make_loader({
            "b": {"versions": {"1.0.0": {
                "bundled": [{"name": "inner", "version": "0.1.0"}],
            }}},
        })
        root = trees.root({"b": "1.0.0"})

        loader.load_deps(root)

        b = _child(root, "b")
        assert _names(b) == ["inner"]
        inner = b.children[0]
        assert inner.from_bundle is True
        assert inner.version == "0.1.0"
        assert inner.path == os.path.join(b.path, "inner")


class TestFailures:
    """失败传播与可选依赖"""

    def test_optional_failure_only_warns(self, trees, make_loader, caplog) -> None:
        loader = make_loader({"x": {"versions": {"1.0.0": {}}}})
        root = trees.root({"x": "^1.0.0"}, optionalDependencies={"missing": "^1.0.0"})

        with caplog.at_level(logging.DEBUG, logger="pkgtree"):
            loader.load_deps(root)

        assert _names(root) == ["x"]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "missing@^1.0.0" in warnings[0].getMessage()

    def test_required_failure_keeps_siblings_without_recursion(
        self, trees, make_loader,
    ) -> None:
        loader = make_loader({
            "a": {"versions": {"1.0.0": {"dependencies": {"d": "1.0.0"}}}},
            "c": {"versions": {"1.0.0": {}}},
            "d": {"versions": {"1.0.0": {}}},
        })
        root = trees.root({"a": "1.0.0", "bad": "1.0.0", "c": "1.0.0"})

        with pytest.raises(FetchError) as exc_info:
            loader.load_deps(root)

        assert _names(root) == ["a", "c"]
        assert _child(root, "a").loaded is False
        assert exc_info.value.required_by == ["app@1.0.0"]
        assert str(exc_info.value).endswith("(required by app@1.0.0)")

    def test_error_chain_lists_every_requirer(self, trees, make_loader) -> None:
        loader = make_loader({
            "a": {"versions": {"1.0.0": {"dependencies": {"b": "1.0.0"}}}},
            "b": {"versions": {"1.0.0": {"dependencies": {"missing": "^1.0.0"}}}},
        })
        root = trees.root({"a": "1.0.0"})

        with pytest.raises(FetchError) as exc_info:
            loader.load_deps(root)

        err = exc_info.value
        assert err.code == "FETCH_ERROR"
        assert err.required_by == ["b@1.0.0", "a@1.0.0", "app@1.0.0"]
        assert str(err) == (
            "包 'missing' 不在注册表中 "
            "(required by b@1.0.0 required by a@1.0.0 required by app@1.0.0)"
        )

    def test_fetcher_os_error_becomes_fetch_error(self, trees, snapshots) -> None:

        class BrokenFetcher:
            def fetch(self, spec, base_dir=""):
                raise OSError("connection reset")

        loader = DepLoader(BrokenFetcher(), snapshots, Config(max_workers=1))
        root = trees.root({"x": "1.0.0"})

        with pytest.raises(FetchError, match="connection reset"):
            loader.load_deps(root)


class TestDeterminism:
    """拉取完成顺序不影响最终树形"""

    PACKAGES = {
        "a": {"versions": {"1.0.0": {"dependencies": {"shared": "^1.0.0"}}}},
        "b": {"versions": {"1.0.0": {"dependencies": {"shared": "^2.0.0"}}}},
        "c": {"versions": {"1.0.0": {"dependencies": {"shared": "^1.0.0", "leaf": "*"}}}},
        "shared": {"versions": {"1.0.0": {}, "2.0.0": {}}},
        "leaf": {"versions": {"0.1.0": {}}},
    }

    @staticmethod
    def _slow(loader, delays: dict[str, float]) -> None:
        inner = loader.fetcher

        class SlowFetcher:
            def fetch(self, spec, base_dir=""):
                time.sleep(delays.get(spec.split("@", 1)[0], 0))
                return inner.fetch(spec, base_dir)

        slow = SlowFetcher()
        loader.fetcher = slow
        loader.resolver.fetcher = slow
        loader.resolver.inflater.fetcher = slow

    def _resolve(self, trees, make_loader, workers: int, delays: dict[str, float]):
        loader = make_loader(self.PACKAGES, max_workers=workers)
        self._slow(loader, delays)
        root = trees.root({"a": "1.0.0", "b": "1.0.0", "c": "1.0.0"})
        loader.load_deps(root)
        return tree_to_dict(root)

    def test_same_tree_regardless_of_completion_order(self, trees, make_loader) -> None:
        sequential = self._resolve(trees, make_loader, 1, {})
        reversed_order = self._resolve(
            trees, make_loader, 4, {"a": 0.05, "b": 0.03, "c": 0.0},
        )
        forward_order = self._resolve(
            trees, make_loader, 4, {"a": 0.0, "b": 0.03, "c": 0.05},
        )
        assert sequential == reversed_order == forward_order

    def test_conflict_placement_follows_name_order(self, trees, make_loader) -> None:
        tree = self._resolve(trees, make_loader, 4, {"a": 0.05})
        top = {c["name"]: c for c in tree["children"]}
        assert top["shared"]["version"] == "1.0.0"
        nested = {c["name"]: c for c in top["b"]["children"]}
        assert nested["shared"]["version"] == "2.0.0"


class TestLoadDevDeps:
    def test_name_in_both_maps_is_skipped(self, trees, make_loader) -> None:
        loader = make_loader({
            "x": {"versions": {"1.0.0": {}, "2.0.0": {}}},
            "y": {"versions": {"1.0.0": {}}},
        })
        root = trees.root({"x": "^1.0.0"}, {"x": "^2.0.0", "y": "^1.0.0"})

        loader.load_deps(root)
        loader.load_dev_deps(root)

        assert _names(root) == ["x", "y"]
        x = _child(root, "x")
        assert x.version == "1.0.0"
        assert x.requested.spec == "^1.0.0"
        assert x.dev_dependency is False
        assert _child(root, "y").dev_dependency is True

    def test_no_dev_dependencies(self, trees, make_loader) -> None:
        loader = make_loader({})
        root = trees.root()
        assert loader.load_dev_deps(root) is root
        assert root.children == []


class TestLoadExtraneous:
    def test_existing_child_is_linked_then_loaded(self, trees, make_loader) -> None:
        loader = make_loader({"y": {"versions": {"1.0.0": {}}}})
        root = trees.root({"x": "^1.0.0"})
        x = trees.add(root, "x", "1.0.0", {"y": "^1.0.0"}, loaded=False)

        loader.load_extraneous(root)

        assert x.required_by == ["/"]
        assert x.requested == RequestedSpec(name="x", type="version", spec="1.0.0")
        assert x.loaded is True
        assert _names(root) == ["x", "y"]
        assert _child(root, "y").required_by == ["/x"]

    def test_loaded_children_are_left_alone(self, trees, make_loader) -> None:
        loader = make_loader({})
        root = trees.root({"x": "^1.0.0"})
        x = trees.add(root, "x", "1.0.0")

        loader.load_extraneous(root)

        assert x.required_by == []
        assert x.requested is None


class TestRecalculateMetadata:
    PACKAGES = {
        "a": {"versions": {"1.0.0": {"dependencies": {"b": "^1.0.0"}}}},
        "b": {"versions": {"1.0.0": {}, "2.0.0": {}}},
        "c": {"versions": {"1.0.0": {"dependencies": {"b": "^2.0.0"}}}},
    }

    def test_rebuild_is_idempotent(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES)
        root = trees.root({"a": "1.0.0", "c": "1.0.0"})
        loader.load_deps(root)

        loader.recalculate_metadata(root)
        once = tree_to_dict(root)
        once_requires = _requires(root)
        loader.recalculate_metadata(root)

        assert tree_to_dict(root) == once
        assert _requires(root) == once_requires
        assert once_requires["/"] == ["a", "c"]
        assert once_requires["/a"] == once_requires["/c"] == ["b"]

    def test_stale_links_are_replaced(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES)
        root = trees.root({"a": "1.0.0", "c": "1.0.0"})
        loader.load_deps(root)
        b1 = _child(root, "b")
        b2 = _child(_child(root, "c"), "b")
        expected_b1 = list(b1.required_by)
        expected_b2 = list(b2.required_by)

        b1.required_by = ["/gone", USER_MARKER]
        b2.required_by = []
        root.phantom_children = {"junk": "0.0.0"}
        loader.recalculate_metadata(root)

        assert b1.required_by == [USER_MARKER] + expected_b1
        assert b2.required_by == expected_b2 == ["/c"]
        assert root.phantom_children == {}

    def test_does_not_fetch(self, trees, make_loader) -> None:
        loader = make_loader({})
        root = trees.root({"x": "^1.0.0"})
        x = trees.add(root, "x", "1.1.0")

        loader.recalculate_metadata(root)

        assert x.required_by == ["/"]
        assert root.requires == [x]

    def test_adjacent_snapshot_is_not_inflated(self, trees, snapshots, make_loader) -> None:
        loader = make_loader({"y": {"versions": {"1.0.0": {}}}})
        fetched: list[str] = []
        inner = loader.fetcher

        class RecordingFetcher:
            def fetch(self, spec, base_dir=""):
                fetched.append(spec)
                return inner.fetch(spec, base_dir)

        recording = RecordingFetcher()
        loader.fetcher = recording
        loader.resolver.fetcher = recording
        loader.resolver.inflater.fetcher = recording

        root = trees.root({"x": "^1.0.0"})
        x = trees.add(root, "x", "1.0.0", {"y": "^1.0.0"}, loaded=False)
        x.shrinkwrap_checked = False
        path = os.path.join(x.path, "npm-shrinkwrap.json")
        snapshots.files[path] = b'{"dependencies": {"y": {"version": "1.0.0"}}}'

        loader.recalculate_metadata(root)

        assert fetched == []
        assert snapshots.reads == []
        assert len(list(root.walk())) == 2
        assert x.children == []
        assert x.shrinkwrap_checked is False
        assert x.required_by == ["/"]


class TestLoadRequestedDeps:
    PACKAGES = {
        "x": {"versions": {"1.0.0": {}, "2.0.0": {"dependencies": {"y": "*"}}}},
        "y": {"versions": {"1.0.0": {}}},
    }

    def test_replaces_existing_and_marks_user(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES)
        root = trees.root()
        old = trees.add(root, "x", "1.0.0")

        loader.load_requested_deps(["x@2.0.0"], root)

        assert old not in root.children
        x = _child(root, "x")
        assert x.version == "2.0.0"
        assert x.directly_requested is True
        assert x.save is False
        assert x.required_by == [USER_MARKER]
        assert _child(root, "y").required_by == ["/x"]

    def test_saved_request_has_no_user_marker(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES)
        root = trees.root()

        loader.load_requested_deps(["x@^1.0.0"], root, save=True)

        x = _child(root, "x")
        assert x.save is True
        assert x.required_by == []

    def test_declared_dependency_is_required_by_root(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES)
        root = trees.root({"x": "^1.0.0"})

        loader.load_requested_deps(["x@1.0.0"], root)

        assert _child(root, "x").required_by == ["/"]

    def test_global_install_flag(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES, global_install=True)
        root = trees.root()
        loader.load_requested_deps(["x@1.0.0"], root)
        assert _child(root, "x").is_global is True

    def test_failure_keeps_successful_requests(self, trees, make_loader) -> None:
        loader = make_loader(self.PACKAGES)
        root = trees.root()

        with pytest.raises(FetchError) as exc_info:
            loader.load_requested_deps(["missing@1.0.0", "x@1.0.0"], root)

        assert _names(root) == ["x"]
        assert exc_info.value.required_by == ["app@1.0.0"]


class TestRemoveDeps:
    def test_removed_subtree_is_scrubbed(self, trees, make_loader) -> None:
        loader = make_loader({
            "a": {"versions": {"1.0.0": {"dependencies": {"b": "1.0.0"}}}},
            "b": {"versions": {"1.0.0": {}}},
        })
        root = trees.root({"a": "1.0.0"})
        loader.load_deps(root)
        b = _child(root, "b")
        assert b.required_by == ["/a"]

        loader.remove_deps(["a"], root)

        assert _names(root) == ["b"]
        assert b.required_by == []
        assert root.requires == []

    def test_unknown_name_is_ignored(self, trees, make_loader) -> None:
        loader = make_loader({})
        root = trees.root()
        x = trees.add(root, "x", "1.0.0")
        loader.remove_deps(["nope"], root)
        assert root.children == [x]


class TestValidatePeerDeps:
    def test_missing_peer_warns(self, trees, make_loader, caplog) -> None:
        loader = make_loader({
            "host": {"versions": {"1.0.0": {}}},
            "plugin": {"versions": {"1.0.0": {
                "peerDependencies": {"host": "^1.0.0", "missing": "^2.0.0"},
            }}},
        })
        root = trees.root({"host": "1.0.0", "plugin": "1.0.0"})
        loader.load_deps(root)

        with caplog.at_level(logging.WARNING, logger="pkgtree"):
            warnings = loader.validate_peer_deps(root)

        assert warnings == [
            "plugin@1.0.0 requires a peer of missing@^2.0.0 but none was installed.",
        ]
        assert any(warnings[0] in r.getMessage() for r in caplog.records)

    def test_incompatible_peer_warns(self, trees, make_loader) -> None:
        loader = make_loader({
            "host": {"versions": {"3.0.0": {}}},
            "plugin": {"versions": {"1.0.0": {"peerDependencies": {"host": "^1.0.0"}}}},
        })
        root = trees.root({"host": "3.0.0", "plugin": "1.0.0"})
        loader.load_deps(root)

        warnings = loader.validate_peer_deps(root)

        assert len(warnings) == 1
        assert "host@^1.0.0" in warnings[0]
        assert [n.name for n in root.walk()].count("host") == 1
