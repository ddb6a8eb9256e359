"""Tests for capped transitive-closure clustering."""

from __future__ import annotations

import pytest

from entitylens.clustering import build_clusters, cluster_sizes


class TestBuildClusters:
    def test_pairs_and_singletons(self):
        result = build_clusters(
            ["a", "b", "c", "d", "e"],
            [("a", "b"), ("d", "c")],
        )
        assert result.assignments == {"a": "a", "b": "a", "c": "c", "d": "c", "e": "e"}
        assert result.n_clusters == 3
        assert result.converged

    def test_transitive_closure(self):
        result = build_clusters(["r1", "r2", "r3", "r4"], [("r3", "r4"), ("r2", "r3"), ("r1", "r2")])
        assert set(result.assignments.values()) == {"r1"}
        assert result.iterations == 3
        assert result.converged

    def test_triangle_converges_in_one_round(self):
        result = build_clusters(["x", "y", "z"], [("x", "y"), ("y", "z"), ("x", "z")])
        assert set(result.assignments.values()) == {"x"}
        assert result.iterations == 1

    def test_depth_cap_splits_long_chains(self):
        ids = [f"n{i:02d}" for i in range(12)]
        chain = list(zip(ids, ids[1:]))
        result = build_clusters(ids, chain, max_depth=10)
        assert result.iterations == 10
        assert not result.converged
        assert result.assignments["n10"] == "n00"
        assert result.assignments["n11"] == "n01"

    def test_chain_within_cap_converges(self):
        ids = [f"n{i:02d}" for i in range(11)]
        result = build_clusters(ids, list(zip(ids, ids[1:])), max_depth=10)
        assert result.converged
        assert set(result.assignments.values()) == {"n00"}

    def test_ids_only_in_matches_are_added(self):
        result = build_clusters([], [("p", "q")])
        assert result.assignments == {"p": "p", "q": "p"}

    def test_self_matches_ignored(self):
        result = build_clusters(["a"], [("a", "a")])
        assert result.assignments == {"a": "a"}
        assert result.iterations == 0

    def test_invalid_depth(self):
        with pytest.raises(ValueError, match="max_depth"):
            build_clusters(["a"], [], max_depth=0)


class TestClusterSizes:
    def test_counts_members(self):
        assert cluster_sizes({"a": "a", "b": "a", "c": "c"}) == {"a": 2, "c": 1}
