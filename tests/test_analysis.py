"""End-to-end tests: ingestion followed by a full group recompute."""

import asyncio

from outtamusic.analysis import recompute
from outtamusic.clustering import cluster_count
from outtamusic.features import STATIC_PAIRS
from outtamusic.models import FeatureStore
from outtamusic.records import ingest_member

from fakes import FakeFetcher, make_features, make_store, make_track

YEAR = 2020


def two_member_store():
    alice = FakeFetcher(
        playlists={YEAR: [make_track("a1", "al1", ["ar1"]), make_track("a2", "al2", ["ar2"])]},
        features={
            "a1": make_features("a1", mode=1, tempo=100.0, valence=0.2),
            "a2": make_features("a2", mode=0, tempo=140.0, valence=0.9),
        },
    )
    bob = FakeFetcher(
        playlists={YEAR: [make_track("b1", "al3", ["ar3"]), make_track("b2", "al4", ["ar4"])]},
        features={
            "b1": make_features("b1", mode=1, tempo=80.0, valence=0.4),
            "b2": make_features("b2", mode=1, tempo=170.0, valence=0.6),
        },
    )
    store = asyncio.run(ingest_member(FeatureStore(), "alice", alice, years=[YEAR]))
    return asyncio.run(ingest_member(store, "bob", bob, years=[YEAR]))


class TestTwoMemberScenario:

    def setup_method(self):
        self.store = two_member_store()
        self.analysis = recompute(self.store, None, ["alice", "bob"])

    def test_feature_store_shape(self):
        assert len(self.store.tracks) == 4
        assert [len(m.years[YEAR]) for m in self.store.members] == [2, 2]

    def test_grid_is_member_by_year(self):
        assert self.analysis.members == ["alice", "bob"]
        assert self.analysis.years == [YEAR]
        assert len(self.analysis.cells) == 2
        assert all(len(row) == 1 for row in self.analysis.cells)
        assert self.analysis.cell("bob", YEAR).member_id == "bob"

    def test_static_clusters_cover_all_tracks(self):
        for row in self.analysis.cells:
            cell = row[0]
            for name, _, _ in STATIC_PAIRS:
                assert len(cell.static_clusters[name]) == 2
                assert all(0 <= c < 5 for c in cell.static_clusters[name])

    def test_dynamic_clusters_cover_all_tracks(self):
        for row in self.analysis.cells:
            dyn = row[0].dynamic_clusters
            assert len(dyn.assignments) == 2
            assert all(0 <= c < 5 for c in dyn.assignments)
            assert len(dyn.pca) == 2

    def test_stats_use_each_members_tracks(self):
        alice = self.analysis.cell("alice", YEAR).stats
        bob = self.analysis.cell("bob", YEAR).stats
        assert alice.track_count == 2
        assert bob.track_count == 2
        assert alice.major_ratio == 0.5
        assert bob.major_ratio == 1.0


class TestRecompute:

    def test_unchanged_store_reuses_prior(self):
        store = two_member_store()
        first = recompute(store, None, ["alice", "bob"])
        assert recompute(store, first, ["alice", "bob"]) is first

    def test_reordered_playlist_is_recomputed(self):
        tracks = [make_track("t1", "al1", ["ar1"]), make_track("t2", "al2", ["ar2"])]
        first_store = asyncio.run(
            ingest_member(FeatureStore(), "alice", FakeFetcher(playlists={YEAR: tracks}), years=[YEAR])
        )
        first = recompute(first_store, None, ["alice"])

        reordered = FakeFetcher(playlists={YEAR: list(reversed(tracks))})
        second_store = asyncio.run(ingest_member(first_store, "alice", reordered, years=[YEAR]))
        assert second_store.members[0].years[YEAR] != first_store.members[0].years[YEAR]

        second = recompute(second_store, first, ["alice"])
        assert second is not first
        assert second.fingerprint != first.fingerprint

    def test_different_known_tracks_are_recomputed(self):
        store = two_member_store()
        first = recompute(store, None, ["alice", "bob"])

        swapped = FakeFetcher(
            playlists={YEAR: [make_track("a2", "al2", ["ar2"]), make_track("b1", "al3", ["ar3"])]}
        )
        store = asyncio.run(ingest_member(store, "bob", swapped, years=[YEAR]))
        assert len(store.tracks) == 4

        assert recompute(store, first, ["alice", "bob"]) is not first

    def test_group_growth_forces_recompute(self):
        store = make_store({2019: [10]})
        small = recompute(store, None, ["m0"])
        big = recompute(store, small, ["m0", "b", "c", "d"])

        assert big is not small
        small_labels = small.cells[0][0].static_clusters["valence_tempo"]
        big_labels = big.cells[0][0].static_clusters["valence_tempo"]
        assert max(small_labels) == cluster_count(1) - 1
        assert max(big_labels) == cluster_count(4) - 1

    def test_changed_store_is_recomputed(self):
        store = make_store({2019: [4, 3]})
        prior = recompute(store, None)
        bigger = make_store({2019: [4, 3, 2]})
        fresh = recompute(bigger, prior)
        assert fresh is not prior
        assert fresh.members == ["m0", "m1", "m2"]

    def test_empty_year_does_not_block_others(self):
        store = make_store({2019: [5, 4], 2020: [0, 0]})
        analysis = recompute(store, None)

        assert analysis.years == [2019, 2020]
        for row in analysis.cells:
            empty = row[1]
            assert empty.dynamic_clusters.assignments == []
            assert all(v == [] for v in empty.static_clusters.values())
            assert empty.stats.track_count == 0

        assert len(analysis.cells[0][0].dynamic_clusters.assignments) == 5
        assert len(analysis.cells[1][0].static_clusters["valence_tempo"]) == 4

    def test_group_size_sets_cluster_count(self):
        store = make_store({2019: [30, 30]})
        analysis = recompute(store, None, ["m0", "m1", "x", "y", "z"])
        labels = {
            c
            for row in analysis.cells
            for c in row[0].dynamic_clusters.assignments
        }
        assert max(labels) < 8
