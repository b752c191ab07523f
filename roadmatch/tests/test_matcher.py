from unittest import mock

from django.test import SimpleTestCase

from roadmatch.conf import MatchingConfig
from roadmatch.exceptions import LowConfidenceMatch, NoRoadData
from roadmatch.graph import RoadGraph
from roadmatch.matcher import SINGLE_POINT, TWO_POINT, MapMatcher, Matched, Unmatched

from .helpers import (
    METRES_PER_DEGREE,
    FakeClock,
    FakeProvider,
    dublin_graph,
    failing_provider,
    match_result,
    snap_result,
)


class LocalMatchTests(SimpleTestCase):
    def setUp(self):
        self.matcher = MapMatcher(dublin_graph())

    def test_close_point_snaps_onto_street(self):
        outcome = self.matcher.match_point(53.3500, -6.2604)

        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.provider, "local")
        self.assertEqual(outcome.method, SINGLE_POINT)
        self.assertAlmostEqual(outcome.lng, -6.2603, places=6)
        self.assertAlmostEqual(outcome.lat, 53.3500, places=5)
        self.assertAlmostEqual(outcome.heading, 0.0, places=3)
        self.assertGreater(outcome.confidence, 0.3)

    def test_distant_point_is_unmatched(self):
        # Roughly 80 m west of the street: confidence about 0.21.
        offset = 80.0 / (METRES_PER_DEGREE * 0.5964)
        outcome = self.matcher.match_point(53.3500, -6.2603 - offset)

        self.assertIsInstance(outcome, Unmatched)
        self.assertEqual(outcome.reason, "low_confidence")
        self.assertLess(outcome.confidence, 0.3)

    def test_empty_graph_without_remote_raises_no_road_data(self):
        matcher = MapMatcher(RoadGraph([]))
        with self.assertRaises(NoRoadData):
            matcher.match_point(53.35, -6.26)

    def test_pair_without_remote_uses_single_point(self):
        outcome = self.matcher.match_pair((53.3490, -6.2603), 53.3500, -6.2604)
        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.method, SINGLE_POINT)


class ConfidenceGateTests(SimpleTestCase):
    def matcher_with(self, snap):
        return MapMatcher(dublin_graph(), remote=FakeProvider(snap=snap))

    def test_confidence_at_threshold_is_rejected(self):
        outcome = self.matcher_with(snap_result(53.35, -6.26, confidence=0.3)).match_point(53.35, -6.26)
        self.assertIsInstance(outcome, Unmatched)
        self.assertEqual(outcome.reason, "low_confidence")

    def test_confidence_above_threshold_is_accepted(self):
        outcome = self.matcher_with(snap_result(53.35, -6.26, confidence=0.31)).match_point(53.35, -6.26)
        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.provider, "fake")

    def test_snap_beyond_max_distance_is_rejected(self):
        outcome = self.matcher_with(
            snap_result(53.35, -6.26, distance_m=250.0, confidence=0.9)
        ).match_point(53.35, -6.26)
        self.assertIsInstance(outcome, Unmatched)
        self.assertEqual(outcome.reason, "too_far")

    def test_thresholds_follow_config(self):
        matcher = MapMatcher(
            dublin_graph(),
            remote=FakeProvider(snap=snap_result(53.35, -6.26, confidence=0.5)),
            config=MatchingConfig(single_point_min_confidence=0.6),
        )
        self.assertIsInstance(matcher.match_point(53.35, -6.26), Unmatched)

    def test_low_remote_confidence_does_not_fall_back_to_local(self):
        remote = FakeProvider(snap=snap_result(53.35, -6.26, confidence=0.1))
        matcher = MapMatcher(dublin_graph(), remote=remote)
        self.assertIsInstance(matcher.match_point(53.3500, -6.2603), Unmatched)


class RemoteFallbackTests(SimpleTestCase):
    def test_provider_error_falls_back_to_local_graph(self):
        matcher = MapMatcher(dublin_graph(), remote=failing_provider())

        with self.assertLogs("roadmatch.matcher", level="WARNING"):
            outcome = matcher.match_point(53.3500, -6.2604)

        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.provider, "local")

    def test_provider_error_with_empty_graph_raises_no_road_data(self):
        matcher = MapMatcher(RoadGraph([]), remote=failing_provider())
        with self.assertRaises(NoRoadData):
            matcher.match_point(53.35, -6.26)

    def test_two_point_match_uses_last_coordinate_and_bearing(self):
        remote = FakeProvider(
            match=match_result([(-6.2603, 53.3490), (-6.2603, 53.3495), (-6.2603, 53.3500)], 0.9)
        )
        matcher = MapMatcher(dublin_graph(), remote=remote)

        outcome = matcher.match_pair((53.3490, -6.2604), 53.3500, -6.2604)

        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.method, TWO_POINT)
        self.assertEqual((outcome.lat, outcome.lng), (53.3500, -6.2603))
        self.assertAlmostEqual(outcome.heading, 0.0, places=6)
        self.assertEqual(remote.match_calls, [[(-6.2604, 53.3490), (-6.2604, 53.3500)]])
        self.assertEqual(remote.snap_calls, [])

    def test_two_point_low_confidence_falls_back_to_single_point(self):
        remote = FakeProvider(
            snap=snap_result(53.3500, -6.2603),
            match=match_result([(-6.2603, 53.3490), (-6.2603, 53.3500)], 0.6),
        )
        outcome = MapMatcher(dublin_graph(), remote=remote).match_pair((53.3490, -6.2604), 53.3500, -6.2604)

        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.method, SINGLE_POINT)
        self.assertEqual(len(remote.snap_calls), 1)

    def test_two_point_single_coordinate_falls_back(self):
        remote = FakeProvider(snap=snap_result(53.3500, -6.2603), match=match_result([(-6.2603, 53.35)], 0.95))
        outcome = MapMatcher(dublin_graph(), remote=remote).match_pair((53.3490, -6.2604), 53.3500, -6.2604)
        self.assertEqual(outcome.method, SINGLE_POINT)

    def test_two_point_provider_error_falls_back_to_local(self):
        matcher = MapMatcher(dublin_graph(), remote=failing_provider())
        with self.assertLogs("roadmatch.matcher", level="WARNING"):
            outcome = matcher.match_pair((53.3490, -6.2604), 53.3500, -6.2604)
        self.assertIsInstance(outcome, Matched)
        self.assertEqual(outcome.provider, "local")


class ServiceHealthTests(SimpleTestCase):
    def test_merges_local_and_remote_health(self):
        matcher = MapMatcher(dublin_graph(), remote=FakeProvider())
        self.assertEqual(matcher.service_health(), {"local": True, "fake": True})

    def test_empty_graph_reports_local_unhealthy(self):
        self.assertEqual(MapMatcher(RoadGraph([])).service_health(), {"local": False})

    def test_remote_is_rechecked_on_interval(self):
        clock = FakeClock()
        remote = FakeProvider()
        matcher = MapMatcher(dublin_graph(), remote=remote, clock=clock)

        matcher.service_health()
        clock.advance(29.0)
        matcher.service_health()
        self.assertEqual(remote.health_checks, 1)

        clock.advance(1.0)
        matcher.service_health()
        self.assertEqual(remote.health_checks, 2)

        matcher.refresh_service_health(force=True)
        self.assertEqual(remote.health_checks, 3)

    def test_crashing_health_check_reports_unhealthy(self):
        remote = FakeProvider()
        remote.check_health = mock.Mock(side_effect=RuntimeError("boom"))
        matcher = MapMatcher(dublin_graph(), remote=remote)

        with self.assertLogs("roadmatch.matcher", level="ERROR"):
            health = matcher.service_health()

        self.assertEqual(health, {"local": True, "fake": False})

    def test_unhealthy_remote_is_bypassed_until_recheck(self):
        clock = FakeClock()
        remote = FakeProvider(snap=snap_result(53.3500, -6.2603), healthy=False, check_result=False)
        matcher = MapMatcher(dublin_graph(), remote=remote, clock=clock)

        with self.assertLogs("roadmatch.matcher", level="WARNING"):
            first = matcher.match_point(53.3500, -6.2604)
        remote.check_result = True
        second = matcher.match_pair((53.3490, -6.2604), 53.3500, -6.2604)

        self.assertEqual((first.provider, second.provider), ("local", "local"))
        self.assertEqual((remote.snap_calls, remote.match_calls), ([], []))
        self.assertEqual(remote.health_checks, 1)

        clock.advance(30.0)
        third = matcher.match_point(53.3500, -6.2604)

        self.assertEqual(third.provider, "fake")
        self.assertEqual(remote.health_checks, 2)
        self.assertEqual(matcher.service_health(), {"local": True, "fake": True})


class LowConfidenceMatchTests(SimpleTestCase):
    def test_carries_confidence_and_threshold(self):
        error = LowConfidenceMatch(0.25, 0.3)
        self.assertEqual((error.confidence, error.threshold), (0.25, 0.3))
        self.assertIn("0.250", str(error))
