"""Tests for K-means and threshold clustering of embedding vectors."""

import numpy as np
import pytest

from diffcluster.clustering.base import KMeansError
from diffcluster.clustering.kmeans import KMeansClusterer, default_cluster_count
from diffcluster.clustering.semantic import cluster_vectors, with_unembedded_singletons
from diffcluster.clustering.threshold import ThresholdClusterer


@pytest.fixture
def rng():
    return np.random.default_rng(42)


class TestKMeansClusterer:
    """Lloyd's k-means with random-permutation initialization."""

    def test_k_equal_to_points_gives_singletons(self, rng):
        vectors = [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [5.0, 5.0]]
        labels = KMeansClusterer(rng=rng).fit_predict(vectors, 4)
        assert sorted(labels) == [0, 1, 2, 3]

    def test_k_equal_to_points_independent_of_seed(self):
        vectors = [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]
        files = ["a", "b", "c"]
        for seed in range(5):
            clusterer = KMeansClusterer(rng=np.random.default_rng(seed))
            clusters = clusterer.cluster_files(files, vectors, 3)
            assert sorted(clusters) == [["a"], ["b"], ["c"]]

    def test_separates_distant_groups(self, rng):
        vectors = [[0.0, 0.0], [0.1, 0.0], [10.0, 10.0], [10.1, 10.0]]
        clusters = KMeansClusterer(rng=rng).cluster_files(["a", "b", "c", "d"], vectors, 2)
        assert sorted(sorted(c) for c in clusters) == [["a", "b"], ["c", "d"]]

    def test_empty_clusters_dropped(self, rng):
        vectors = [[1.0, 1.0]] * 3
        clusters = KMeansClusterer(rng=rng).cluster_files(["a", "b", "c"], vectors, 2)
        assert clusters == [["a", "b", "c"]]

    def test_same_seed_is_reproducible(self):
        vectors = np.random.default_rng(0).normal(size=(12, 4)).tolist()
        first = KMeansClusterer(rng=np.random.default_rng(3)).fit_predict(vectors, 3)
        second = KMeansClusterer(rng=np.random.default_rng(3)).fit_predict(vectors, 3)
        assert first == second

    def test_records_inertia(self, rng):
        clusterer = KMeansClusterer(rng=rng)
        clusterer.fit_predict([[0.0], [2.0]], 1)
        assert clusterer.inertia_ == pytest.approx(2.0)
        assert clusterer.centroids_.shape == (1, 1)

    @pytest.mark.parametrize("k,vectors", [
        (0, [[1.0]]),
        (-1, [[1.0]]),
        (1, []),
        (3, [[1.0], [2.0]]),
    ])
    def test_invalid_parameters(self, rng, k, vectors):
        with pytest.raises(KMeansError):
            KMeansClusterer(rng=rng).fit_predict(vectors, k)

    def test_ragged_vectors_rejected(self, rng):
        with pytest.raises(KMeansError):
            KMeansClusterer(rng=rng).fit_predict([[1.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0]], 2)

    @pytest.mark.parametrize("num_files,expected", [
        (1, 1), (2, 1), (3, 1), (6, 3), (10, 5), (40, 5),
    ])
    def test_default_cluster_count(self, num_files, expected):
        assert default_cluster_count(num_files) == expected


class TestThresholdClusterer:
    """First-fit grouping against cluster seeds."""

    def test_pair_and_singleton(self):
        vectors = [[1.0, 0.0], [0.9, 0.1], [0.0, 1.0]]
        clusters = ThresholdClusterer(0.6).cluster_files(["f1", "f2", "f3"], vectors)
        assert clusters == [["f1", "f2"], ["f3"]]

    def test_compares_against_seed_only(self):
        vectors = [[1.0, 0.0], [0.7, 0.7], [0.0, 1.0]]
        clusters = ThresholdClusterer(0.6).cluster_files(["a", "b", "c"], vectors)
        # c is close to b but not to the seed a
        assert clusters == [["a", "b"], ["c"]]

    def test_threshold_is_inclusive(self):
        labels = ThresholdClusterer(1.0).fit_predict([[1.0, 0.0], [2.0, 0.0]])
        assert labels == [0, 0]

    def test_empty_input(self):
        assert ThresholdClusterer().cluster_files([], []) == []


class TestClusterVectors:
    """Mode selection shared by the embedding layers."""

    def test_threshold_mode(self):
        embeddings = {
            "f1": np.array([1.0, 0.0]),
            "f2": np.array([0.9, 0.1]),
            "f3": np.array([0.0, 1.0]),
        }
        assert cluster_vectors(embeddings, 0, use_threshold=True) == [["f1", "f2"], ["f3"]]

    def test_kmeans_singletons_when_not_more_files_than_k(self):
        embeddings = {"a": np.array([1.0, 0.0]), "b": np.array([0.0, 1.0])}
        assert cluster_vectors(embeddings, 2, use_threshold=False) == [["a"], ["b"]]

    def test_kmeans_with_target(self, rng):
        embeddings = {
            "a": np.array([0.0, 0.0]),
            "b": np.array([0.1, 0.0]),
            "c": np.array([10.0, 10.0]),
            "d": np.array([10.1, 10.0]),
        }
        clusters = cluster_vectors(embeddings, 2, use_threshold=False, rng=rng)
        assert sorted(sorted(c) for c in clusters) == [["a", "b"], ["c", "d"]]

    def test_kmeans_default_count(self, rng):
        embeddings = {name: np.array([float(i), 0.0]) for i, name in enumerate("abcdef")}
        clusters = cluster_vectors(embeddings, 0, use_threshold=False, rng=rng)
        assert len(clusters) <= default_cluster_count(6)
        assert sorted(f for c in clusters for f in c) == list("abcdef")

    def test_ragged_vectors_fall_back_to_singletons(self, rng):
        embeddings = {
            "a": np.array([1.0, 0.0]),
            "b": np.array([0.0, 1.0]),
            "c": np.array([1.0, 0.0, 0.0]),
        }
        clusters = cluster_vectors(embeddings, 2, use_threshold=False, rng=rng)
        assert clusters == [["a"], ["b"], ["c"]]

    def test_unembedded_files_become_singletons(self):
        clusters = with_unembedded_singletons([["a", "b"]], ["a", "x", "b", "y"], {"a": None, "b": None})
        assert clusters == [["a", "b"], ["x"], ["y"]]
