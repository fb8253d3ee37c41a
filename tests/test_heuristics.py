"""Tests for the heuristic clustering layers and the cluster validator."""

import pytest

from diffcluster.clustering.base import ClusterType, merge_clusters, single_file_clusters
from diffcluster.clustering.directory import DirectoryClusterer
from diffcluster.clustering.pattern import (
    PatternClusterer,
    find_test_implementation_pairs,
    implementation_name,
    is_test_file,
)
from diffcluster.clustering.validator import ClusterValidator, passes_threshold_validation

from conftest import make_context


class TestMergeClusters:
    """Smallest-pair merging used for target-count reduction."""

    def test_merge_to_target(self):
        merged = merge_clusters([["a"], ["b"], ["c"], ["d"]], 2)
        assert len(merged) == 2
        assert sorted(f for c in merged for f in c) == ["a", "b", "c", "d"]

    def test_merges_smallest_first(self):
        merged = merge_clusters([["a", "b", "c"], ["d"], ["e", "f"], ["g"]], 3)
        assert merged == [["a", "b", "c"], ["d", "g"], ["e", "f"]]

    def test_no_merge_when_under_target(self):
        clusters = [["a"], ["b"]]
        assert merge_clusters(clusters, 5) == clusters

    def test_non_positive_target_is_noop(self):
        assert merge_clusters([["a"], ["b"], ["c"]], 0) == [["a"], ["b"], ["c"]]

    def test_input_not_modified(self):
        clusters = [["a"], ["b"], ["c"]]
        merge_clusters(clusters, 1)
        assert clusters == [["a"], ["b"], ["c"]]

    def test_single_file_clusters(self):
        assert single_file_clusters(["x", "y"]) == [["x"], ["y"]]
        assert single_file_clusters([]) == []


class TestDirectoryClusterer:
    """Grouping by immediate parent directory."""

    def test_groups_by_directory(self):
        clusterer = DirectoryClusterer()
        files = ["a/1.go", "a/2.go", "b/1.go"]
        clusters = clusterer.cluster(files, "")

        assert clusters == [["a/1.go", "a/2.go"], ["b/1.go"]]
        assert clusterer.confidence(files, clusters, "") == 1.0

    def test_largest_group_first(self):
        clusters = DirectoryClusterer().cluster(["b/1.go", "a/1.go", "a/2.go"], "")
        assert clusters == [["a/1.go", "a/2.go"], ["b/1.go"]]

    def test_merges_down_to_target(self):
        clusterer = DirectoryClusterer()
        files = ["a/1.go", "a/2.go", "b/1.go", "c/1.go"]
        clusters = clusterer.cluster(files, "", target_clusters=2)

        assert clusters == [["a/1.go", "a/2.go"], ["b/1.go", "c/1.go"]]
        # the merged b/c cluster is not well grouped
        assert clusterer.confidence(files, clusters, "") == pytest.approx(0.5)

    def test_absolute_paths_relative_to_root(self):
        files = ["/repo/src/a.py", "/repo/src/b.py", "/repo/docs/c.md"]
        clusters = DirectoryClusterer().cluster(files, "/repo")
        assert clusters == [["/repo/src/a.py", "/repo/src/b.py"], ["/repo/docs/c.md"]]

    def test_produce_and_accept(self, config):
        clusterer = DirectoryClusterer()
        context = make_context(config)
        attempt = clusterer.produce(["a/1.go", "a/2.go", "b/1.go"], context)

        assert attempt.cluster_type == ClusterType.DIRECTORY
        assert attempt.confidence == 1.0
        assert clusterer.accepts(attempt, context)

    def test_rejects_low_confidence(self, config):
        clusterer = DirectoryClusterer()
        context = make_context(config, target=2)
        attempt = clusterer.produce(["a/1.go", "a/2.go", "b/1.go", "c/1.go"], context)
        assert not clusterer.accepts(attempt, context)


class TestPatternClusterer:
    """Test/implementation pairing and extension grouping."""

    def test_is_test_file(self):
        assert is_test_file("foo_test.go")
        assert is_test_file("src/app.test.js")
        assert is_test_file("src/app.spec.ts")
        assert is_test_file("tests/helpers.py")
        assert is_test_file("pkg/test/util.py")
        assert not is_test_file("src/contest.py")
        assert not is_test_file("latest/app.py")

    def test_implementation_name(self):
        assert implementation_name("pkg/foo_test.go") == "foo.go"
        assert implementation_name("app.spec.ts") == "app.ts"
        assert implementation_name("app.test.js") == "app.js"

    def test_pairs_test_with_implementation(self):
        clusters = PatternClusterer().cluster(["foo.go", "foo_test.go", "bar.py"])
        assert ["foo_test.go", "foo.go"] in clusters
        assert ["bar.py"] in clusters
        assert len(clusters) == 2

    def test_base_name_match_preferred_over_directory(self):
        pairs = find_test_implementation_pairs(["src/other.ts", "src/app.ts", "src/app.spec.ts"])
        assert pairs == [("src/app.spec.ts", "src/app.ts")]

    def test_directory_match_when_no_base_name(self):
        pairs = find_test_implementation_pairs(["pkg/handler.go", "pkg/routes_test.go"])
        assert pairs == [("pkg/routes_test.go", "pkg/handler.go")]

    def test_directories_above_root_ignored(self):
        root = "/srv/tests/repo"
        files = [f"{root}/pkg/foo.go", f"{root}/pkg/foo_test.go"]

        assert not is_test_file(files[0], root)
        assert find_test_implementation_pairs(files, root) == [(files[1], files[0])]

    def test_each_file_paired_once(self):
        pairs = find_test_implementation_pairs(["a/foo.go", "a/foo_test.go", "b/foo_test.go"])
        implementations = [impl for _, impl in pairs]
        assert len(implementations) == len(set(implementations))

    def test_chunks_large_extension_groups(self):
        files = [f"f{i}.py" for i in range(5)]
        clusters = PatternClusterer().cluster(files)
        assert clusters == [["f0.py", "f1.py", "f2.py"], ["f3.py", "f4.py"]]

    def test_docs_never_chunked(self):
        files = [f"doc{i}.md" for i in range(5)]
        assert PatternClusterer().cluster(files) == [files]

    def test_files_without_extension_grouped(self):
        clusters = PatternClusterer().cluster(["Makefile", "Dockerfile", "a.py"])
        assert ["Makefile", "Dockerfile"] in clusters

    def test_target_merge(self):
        files = ["a.py", "b.go", "c.rs", "d.md"]
        clusters = PatternClusterer().cluster(files, target_clusters=2)
        assert len(clusters) == 2
        assert sorted(f for c in clusters for f in c) == sorted(files)

    def test_confidence(self):
        clusterer = PatternClusterer()
        files = ["a.py", "b.py", "c.md", "d.go"]
        assert clusterer.confidence(files, [["a.py", "b.py"], ["c.md"], ["d.go"]]) == 1.0
        assert clusterer.confidence(files, [["a.py", "c.md"], ["b.py", "d.go"]]) == 0.0

    def test_produce(self, config):
        clusterer = PatternClusterer()
        attempt = clusterer.produce(["foo.go", "foo_test.go"], make_context(config))
        assert attempt.cluster_type == ClusterType.PATTERN
        assert attempt.clusters == [["foo_test.go", "foo.go"]]
        assert attempt.confidence == 1.0


class TestClusterValidator:
    """Shared similarity-threshold validation."""

    def test_singletons_always_pass(self):
        assert ClusterValidator().validate([["a.py"], ["b/c.md"]], threshold=1.0)

    def test_rejects_when_any_cluster_below_threshold(self):
        clusters = [["src/a.py", "src/b.py"], ["src/c.py", "docs/d.md"]]
        validator = ClusterValidator()
        assert validator.validate(clusters, threshold=0.4)
        # second cluster scores (0.5 + 0.5) / 2
        assert not validator.validate(clusters, threshold=0.6)

    def test_split_failing(self):
        clusters = [["src/a.py", "src/b.py"], ["src/c.py", "docs/d.md"]]
        split = ClusterValidator().split_failing(clusters, threshold=0.6)
        assert split == [["src/a.py", "src/b.py"], ["src/c.py"], ["docs/d.md"]]

    def test_gate_only_applies_in_threshold_mode(self, config):
        failing = [["src/c.py", "docs/d.md"]]
        assert not passes_threshold_validation(failing, make_context(config, target=0), "directory")
        assert passes_threshold_validation(failing, make_context(config, target=3), "directory")
