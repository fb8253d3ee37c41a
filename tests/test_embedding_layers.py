"""Tests for the cached, semantic and smart sampling layers."""

import numpy as np
import pytest

from diffcluster.clustering.base import ClusterType
from diffcluster.clustering.cached import CachedEmbeddingClusterer, embedding_cluster_confidence
from diffcluster.clustering.pattern import PatternClusterer
from diffcluster.clustering.sampling import (
    SmartSamplingClusterer,
    assign_files_to_clusters,
    sample_size,
    select_representatives,
)
from diffcluster.clustering.semantic import SemanticClusterer
from diffcluster.embeddings.base import EmbeddingClient, TRUNCATION_MARKER
from diffcluster.embeddings.rate_limit import FixedDelayRateLimiter, NoDelayRateLimiter

from conftest import FakeDiffProvider, FakeEmbeddingClient, flatten, make_context

PY = [1.0, 0.0, 0.0]
JS = [0.0, 1.0, 0.0]
MD = [0.0, 0.0, 1.0]


class RecordingClient(EmbeddingClient):
    """Embeds any text as a fixed vector and records the texts."""

    def __init__(self):
        self.texts = []

    def get_model_name(self) -> str:
        return "recording"

    def generate_embedding(self, text: str) -> np.ndarray:
        self.texts.append(text)
        return np.array([1.0, 0.0])


def semantic_clusterer(client, cache_store, diff_provider=None, rate_limiter=None, seed=0):
    return SemanticClusterer(
        client,
        diff_provider or FakeDiffProvider(),
        rate_limiter or NoDelayRateLimiter(),
        cache_store,
        np.random.default_rng(seed),
    )


class TestSemanticClusterer:
    """Final fallback: embed everything, then cluster."""

    def test_threshold_mode_pair_and_singleton(self, config, cache_store):
        client = FakeEmbeddingClient.for_files({
            "f1": [1.0, 0.0], "f2": [0.9, 0.1], "f3": [0.0, 1.0],
        })
        clusterer = semantic_clusterer(client, cache_store)

        attempt = clusterer.produce(["f1", "f2", "f3"], make_context(config, target=0))

        assert attempt.clusters == [["f1", "f2"], ["f3"]]
        assert attempt.cluster_type == ClusterType.SEMANTIC
        assert clusterer.accepts(attempt, make_context(config))

    def test_failed_files_kept_as_singletons(self, config, cache_store):
        client = FakeEmbeddingClient.for_files({"a": [1.0, 0.0], "b": [1.0, 0.1], "c": [0.0, 1.0]})
        diffs = FakeDiffProvider(failing=["c"])
        clusterer = semantic_clusterer(client, cache_store, diff_provider=diffs)

        clusters = clusterer.cluster(["a", "b", "c", "d"], make_context(config))

        assert clusters == [["a", "b"], ["c"], ["d"]]

    def test_fewer_than_two_embeddings_gives_singletons(self, config, cache_store):
        client = FakeEmbeddingClient.for_files({"a": [1.0, 0.0]})
        clusterer = semantic_clusterer(client, cache_store)
        assert clusterer.cluster(["a", "b", "c"], make_context(config)) == [["a"], ["b"], ["c"]]

    def test_target_mode_uses_kmeans(self, config, cache_store):
        client = FakeEmbeddingClient.for_files({
            "a": [1.0, 0.0], "b": [1.1, 0.0], "c": [10.0, 10.0], "d": [10.1, 10.0],
        })
        clusterer = semantic_clusterer(client, cache_store)

        clusters = clusterer.cluster(["a", "b", "c", "d"], make_context(config, target=2))

        assert sorted(sorted(c) for c in clusters) == [["a", "b"], ["c", "d"]]

    def test_target_not_below_file_count_gives_singletons(self, config, cache_store):
        client = FakeEmbeddingClient.for_files({"a": [1.0, 0.0], "b": [1.0, 0.0]})
        clusterer = semantic_clusterer(client, cache_store)
        assert clusterer.cluster(["a", "b"], make_context(config, target=5)) == [["a"], ["b"]]

    def test_waits_between_calls_but_not_before_first(self, config, cache_store):
        sleeps = []
        limiter = FixedDelayRateLimiter(2.0, sleep=sleeps.append)
        client = FakeEmbeddingClient.for_files({"a": [1.0, 0.0], "b": [1.0, 0.0], "c": [1.0, 0.0]})
        clusterer = semantic_clusterer(client, cache_store, rate_limiter=limiter)

        clusterer.cluster(["a", "b", "c"], make_context(config))

        assert sleeps == [2.0, 2.0]

    def test_truncates_long_diffs(self, config, cache_store):
        client = RecordingClient()
        diffs = FakeDiffProvider({"big.py": "x" * 20000, "small.py": "tiny"})
        clusterer = semantic_clusterer(client, cache_store, diff_provider=diffs)

        clusterer.cluster(["big.py", "small.py"], make_context(config))

        assert client.texts[0] == "x" * 10000 + TRUNCATION_MARKER
        assert client.texts[1] == "tiny"

    def test_embeddings_written_to_cache(self, config, cache_store, repo):
        root = repo(["a.py", "b.py"])
        client = FakeEmbeddingClient.for_files({"a.py": [1.0, 0.0], "b.py": [0.0, 1.0]})
        clusterer = semantic_clusterer(client, cache_store)

        clusterer.cluster(["a.py", "b.py"], make_context(config, root=root))

        assert cache_store.cache_file_path(root).exists()
        assert cache_store.lookup("a.py") is not None
        assert cache_store.lookup("b.py") is not None

    def test_not_applicable_without_client(self, config, cache_store):
        clusterer = semantic_clusterer(None, cache_store)
        assert not clusterer.is_applicable(["a", "b"], make_context(config))


def cached_clusterer(cache_store, client, diff_provider=None):
    return CachedEmbeddingClusterer(
        cache_store, client, diff_provider or FakeDiffProvider(), NoDelayRateLimiter(), np.random.default_rng(0),
    )


def warm_cache(cache_store, root, vectors):
    cache_store.load(root)
    for path, vector in vectors.items():
        cache_store.put(path, np.array(vector))
    cache_store.save()


class TestCachedEmbeddingClusterer:
    """Cluster cached vectors plus a bounded number of new ones."""

    def test_cold_cache_aborts_without_calls(self, config, cache_store, repo):
        root = repo(["a.py", "b.py", "c.py"])
        client = FakeEmbeddingClient()
        clusterer = cached_clusterer(cache_store, client)

        attempt = clusterer.produce(["a.py", "b.py", "c.py"], make_context(config, root=root))

        assert attempt.clusters == [["a.py"], ["b.py"], ["c.py"]]
        assert attempt.confidence == 0.0
        assert attempt.cache_hit_ratio == 0.0
        assert client.calls == []
        assert not clusterer.accepts(attempt, make_context(config, root=root))

    def test_warm_cache_clusters_and_accepts(self, config, cache_store, repo):
        root = repo(["src/a.py", "src/b.py", "docs/c.md"])
        warm_cache(cache_store, root, {"src/a.py": [1.0, 0.0], "src/b.py": [0.95, 0.05], "docs/c.md": [0.0, 1.0]})
        client = FakeEmbeddingClient()
        clusterer = cached_clusterer(cache_store, client)
        context = make_context(config, root=root)

        attempt = clusterer.produce(["src/a.py", "src/b.py", "docs/c.md"], context)

        assert attempt.clusters == [["src/a.py", "src/b.py"], ["docs/c.md"]]
        assert attempt.cache_hit_ratio == 1.0
        assert attempt.confidence > 0.9
        assert attempt.cluster_type == ClusterType.CACHED
        assert client.calls == []
        assert clusterer.accepts(attempt, context)

    def test_embeds_missing_files_and_caches_them(self, config, cache_store, repo):
        root = repo(["a.py", "b.py", "c.py", "d.py"])
        warm_cache(cache_store, root, {"a.py": [1.0, 0.0], "b.py": [1.0, 0.0]})
        client = FakeEmbeddingClient.for_files({"c.py": [1.0, 0.0], "d.py": [0.0, 1.0]})
        clusterer = cached_clusterer(cache_store, client)

        attempt = clusterer.produce(["a.py", "b.py", "c.py", "d.py"], make_context(config, root=root))

        assert attempt.cache_hit_ratio == 0.5
        assert len(client.calls) == 2
        assert attempt.clusters == [["a.py", "b.py", "c.py"], ["d.py"]]
        assert cache_store.lookup("d.py") is not None

    def test_new_embeddings_bounded(self, config, cache_store, repo):
        files = ["a.py", "b.py", "c.py", "d.py", "e.py"]
        root = repo(files)
        warm_cache(cache_store, root, {"a.py": [1.0, 0.0], "b.py": [1.0, 0.0]})
        config.cached.max_new_embeddings = 1
        client = FakeEmbeddingClient.for_files({f: [1.0, 0.0] for f in files})
        clusterer = cached_clusterer(cache_store, client)

        attempt = clusterer.produce(files, make_context(config, root=root))

        assert client.calls == ["diff:c.py"]
        assert attempt.clusters == [["a.py", "b.py", "c.py"], ["d.py"], ["e.py"]]

    def test_failed_embeddings_skipped(self, config, cache_store, repo):
        root = repo(["a.py", "b.py", "c.py"])
        warm_cache(cache_store, root, {"a.py": [1.0, 0.0], "b.py": [1.0, 0.0]})
        clusterer = cached_clusterer(cache_store, FakeEmbeddingClient())

        attempt = clusterer.produce(["a.py", "b.py", "c.py"], make_context(config, root=root))

        assert sorted(flatten(attempt.clusters)) == ["a.py", "b.py", "c.py"]
        assert ["c.py"] in attempt.clusters

    def test_low_hit_ratio_rejected_despite_confidence(self, config, cache_store, repo):
        files = ["a.py", "b.py", "c.py", "d.py", "e.py", "f.py"]
        root = repo(files)
        warm_cache(cache_store, root, {"a.py": [1.0, 0.0], "b.py": [1.0, 0.0]})
        client = FakeEmbeddingClient.for_files({f: [1.0, 0.0] for f in files})
        clusterer = cached_clusterer(cache_store, client)
        context = make_context(config, root=root)

        attempt = clusterer.produce(files, context)

        assert attempt.cache_hit_ratio == pytest.approx(1 / 3)
        assert attempt.confidence == pytest.approx(1.0)
        assert not clusterer.accepts(attempt, context)

    def test_vectors_from_another_model_dropped(self, config, cache_store, repo):
        files = ["a.py", "b.py", "c.py", "d.py", "e.py"]
        root = repo(files)
        warm_cache(cache_store, root, {"a.py": [1.0, 0.0, 0.0, 0.0], "b.py": [1.0, 0.0, 0.0, 0.0],
                                       "c.py": [0.0, 1.0, 0.0, 0.0]})
        client = FakeEmbeddingClient.for_files({"d.py": [1.0, 0.0, 0.0], "e.py": [0.0, 1.0, 0.0]})
        clusterer = cached_clusterer(cache_store, client)

        attempt = clusterer.produce(files, make_context(config, target=2, root=root))

        assert sorted(flatten(attempt.clusters)) == files
        for file in ("a.py", "b.py", "c.py"):
            assert [file] in attempt.clusters

    def test_minority_dimension_counts_as_miss(self, config, cache_store, repo):
        files = ["a.py", "b.py", "c.py"]
        root = repo(files)
        warm_cache(cache_store, root, {"a.py": [1.0, 0.0], "b.py": [1.0, 0.0], "c.py": [1.0, 0.0, 0.0]})
        client = FakeEmbeddingClient()
        clusterer = cached_clusterer(cache_store, client)

        attempt = clusterer.produce(files, make_context(config, root=root))

        assert attempt.cache_hit_ratio == pytest.approx(2 / 3)
        assert attempt.clusters == [["a.py", "b.py"], ["c.py"]]

    def test_confidence_neutral_without_multi_file_clusters(self):
        embeddings = {"a": np.array([1.0, 0.0]), "b": np.array([0.0, 1.0])}
        assert embedding_cluster_confidence([["a"], ["b"]], embeddings) == 0.5

    def test_confidence_mean_over_clusters(self):
        embeddings = {
            "a": np.array([1.0, 0.0]), "b": np.array([1.0, 0.0]),
            "c": np.array([1.0, 0.0]), "d": np.array([0.0, 1.0]),
        }
        assert embedding_cluster_confidence([["a", "b"], ["c", "d"]], embeddings) == pytest.approx(0.5)


SAMPLED_FILES = [
    "api/app.py", "api/routes.py", "api/models.py", "api/views.py",
    "web/index.js", "web/button.js", "web/form.js", "web/modal.js",
    "docs/guide.md", "docs/setup.md", "docs/faq.md", "docs/api.md",
]


class TestSampling:
    """Representative selection and back-assignment."""

    def test_sample_size(self):
        assert sample_size(12) == 6
        assert sample_size(40) == 8

    def test_select_representatives(self):
        files = [
            "src/app.py", "src/util.py", "src/models/user.py", "web/index.js", "web/button.js",
            "docs/readme.md", "docs/guide.md", "src/core.go", "src/x.go", "a.txt", "b.txt", "c.txt",
        ]
        assert select_representatives(files, 6) == [
            "src/app.py", "web/index.js", "docs/readme.md", "src/core.go", "a.txt", "src/models/user.py",
        ]

    def test_select_all_when_few_files(self):
        assert select_representatives(["a.py", "b.py"], 5) == ["a.py", "b.py"]

    def test_assign_to_most_similar_cluster(self):
        clusters = [["src/a.py"], ["docs/x.md"]]
        files = ["src/a.py", "docs/x.md", "src/b.py", "docs/y.md", "lib/z.rb"]

        assigned = assign_files_to_clusters(files, clusters)

        # z.rb matches nothing; ties go to the first cluster
        assert assigned == [["src/a.py", "src/b.py", "lib/z.rb"], ["docs/x.md", "docs/y.md"]]

    def test_assign_without_clusters(self):
        assert assign_files_to_clusters(["a", "b"], []) == [["a"], ["b"]]


class TestSmartSamplingClusterer:
    """Large-changeset layer."""

    @pytest.fixture
    def vectors(self):
        return {
            "api/app.py": PY, "api/routes.py": PY, "api/models.py": PY,
            "web/index.js": JS, "web/button.js": JS, "docs/guide.md": MD,
        }

    def test_only_applies_above_file_limit(self, config, cache_store, vectors):
        sampler = SmartSamplingClusterer(semantic_clusterer(FakeEmbeddingClient.for_files(vectors), cache_store))
        context = make_context(config)
        assert not sampler.is_applicable(SAMPLED_FILES[:10], context)
        assert sampler.is_applicable(SAMPLED_FILES, context)

        config.semantic.enabled = False
        assert not sampler.is_applicable(SAMPLED_FILES, context)

    def test_clusters_representatives_and_assigns_rest(self, config, cache_store, vectors):
        client = FakeEmbeddingClient.for_files(vectors)
        sampler = SmartSamplingClusterer(semantic_clusterer(client, cache_store))

        attempt = sampler.produce(SAMPLED_FILES, make_context(config))

        assert attempt.clusters == [
            ["api/app.py", "api/routes.py", "api/models.py", "api/views.py"],
            ["web/index.js", "web/button.js", "web/form.js", "web/modal.js"],
            ["docs/guide.md", "docs/setup.md", "docs/faq.md", "docs/api.md"],
        ]
        # only the six representatives are embedded
        assert len(client.calls) == 6
        assert sampler.accepts(attempt, make_context(config))

    def test_threshold_mode_splits_incoherent_clusters(self, config, cache_store):
        # every representative embeds identically, so all land in one cluster
        client = RecordingClient()
        sampler = SmartSamplingClusterer(semantic_clusterer(client, cache_store))

        clusters = sampler.cluster(SAMPLED_FILES, make_context(config, target=0))

        assert all(len(cluster) == 1 for cluster in clusters)
        assert sorted(flatten(clusters)) == sorted(SAMPLED_FILES)

    def test_falls_back_to_pattern_clustering(self, config, cache_store):
        sampler = SmartSamplingClusterer(semantic_clusterer(FakeEmbeddingClient(), cache_store))

        clusters = sampler.cluster(SAMPLED_FILES, make_context(config, target=4))

        assert clusters == PatternClusterer().cluster(SAMPLED_FILES, "/repo", 4)
