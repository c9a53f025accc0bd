"""Tests for killswitch.models module"""
import unittest

from killswitch.models import Applied, HealthReport, PartialFailure, RouteError, RouteErrorKind, TunnelState


class TestTunnelState(unittest.TestCase):
    """Test route debouncing"""

    def test_two_positive_observations_confirm(self):
        state = TunnelState(interface_name="tun0")
        self.assertFalse(state.observe_route(True))
        self.assertTrue(state.observe_route(True))
        self.assertTrue(state.stable_confirmed)

    def test_negative_observation_resets(self):
        state = TunnelState(interface_name="tun0")
        state.observe_route(True)
        state.observe_route(True)

        self.assertFalse(state.observe_route(False))
        self.assertFalse(state.stable_confirmed)
        self.assertFalse(state.observe_route(True))


class TestResults(unittest.TestCase):
    def test_ok(self):
        self.assertTrue(Applied(skipped=True).ok)
        self.assertFalse(PartialFailure(detail="denied").ok)

    def test_report_line(self):
        self.assertEqual(HealthReport(passed=False, check="route", reason="Traffic not routing through VPN tunnel").line(),
                         "FAIL: Traffic not routing through VPN tunnel")

    def test_route_error_kind(self):
        error = RouteError(RouteErrorKind.already_exists, "Route for 10.10.0.0/24 already exists", 2)
        self.assertEqual(str(error), "Route for 10.10.0.0/24 already exists")
        self.assertEqual(error.returncode, 2)


if __name__ == "__main__":
    unittest.main()
