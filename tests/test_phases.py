"""
Baud detection, passive sniff and ECU discovery against the simulated bus.

All timing runs on FakeClock, so the second-level windows below are exact
simulated durations rather than real waits.
"""

import logging
import unittest

from scancore.baud_detector import BaudRateDetector
from scancore.core import OBD2_REQUEST_IDS, request_id_for
from scancore.discovery import ECUDiscovery
from scancore.simulator import FakeClock, SimulatedBusTransport, SimulatedECU
from scancore.sniffer import TrafficSniffer

logging.basicConfig(level=logging.WARNING)


class TestBaudRateDetector(unittest.TestCase):

    def _detect(self, **sim_kwargs):
        self.clock = FakeClock()
        self.bus = SimulatedBusTransport(clock=self.clock, **sim_kwargs)
        return BaudRateDetector(self.bus, self.clock).detect()

    def test_first_candidate_exits_early(self):
        self.assertEqual(self._detect(vehicle_bitrate=500_000), 500_000)
        self.assertEqual(self.bus.activity.reconfigures, [500_000])
        # three frames at 20 ms spacing, not the full 2 s window
        self.assertAlmostEqual(self.clock.now(), 0.06, places=6)
        self.assertTrue(self.bus.in_sync)

    def test_candidates_tried_in_priority_order(self):
        self.assertEqual(self._detect(vehicle_bitrate=125_000), 125_000)
        self.assertEqual(self.bus.activity.reconfigures, [500_000, 250_000, 125_000])
        self.assertAlmostEqual(self.clock.now(), 4.06, places=6)

    def test_one_megabit_is_last(self):
        self.assertEqual(self._detect(vehicle_bitrate=1_000_000), 1_000_000)
        self.assertEqual(self.bus.activity.reconfigures,
                         [500_000, 250_000, 125_000, 1_000_000])

    def test_silent_bus(self):
        self.assertIsNone(self._detect(vehicle_bitrate=None))
        self.assertEqual(len(self.bus.activity.reconfigures), 4)
        self.assertAlmostEqual(self.clock.now(), 8.0, places=6)

    def test_too_few_frames_in_window(self):
        # frames at 0.9 s and 1.8 s only
        self.assertIsNone(self._detect(vehicle_bitrate=500_000, traffic_interval=0.9))

    def test_failed_reconfigure_skips_candidate(self):
        self.assertEqual(self._detect(vehicle_bitrate=250_000, failing_bitrates=[500_000]),
                         250_000)
        self.assertEqual(self.bus.activity.reconfigures, [500_000, 250_000])
        # the failed candidate used none of its window
        self.assertAlmostEqual(self.clock.now(), 0.06, places=6)

    def test_every_reconfigure_fails(self):
        self.assertIsNone(self._detect(failing_bitrates=[500_000, 250_000, 125_000, 1_000_000]))
        self.assertEqual(self.clock.now(), 0.0)

    def test_custom_threshold(self):
        self.clock = FakeClock()
        self.bus = SimulatedBusTransport(clock=self.clock, traffic_interval=0.9)
        detector = BaudRateDetector(self.bus, self.clock, min_frames=2)
        self.assertEqual(detector.detect(), 500_000)


class TestTrafficSniffer(unittest.TestCase):

    def test_counts_frames_and_unique_ids(self):
        clock = FakeClock()
        bus = SimulatedBusTransport(clock=clock)
        bus.reconfigure(500_000)
        summary = TrafficSniffer(bus, clock).listen()

        # one frame every 20 ms for 5 s
        self.assertIn(summary.frame_count, (249, 250))
        self.assertEqual(summary.unique_ids, [0x0C9, 0x1E5, 0x3E9])
        self.assertAlmostEqual(clock.now(), 5.0, places=6)

    def test_quiet_bus(self):
        clock = FakeClock()
        bus = SimulatedBusTransport(clock=clock, traffic_ids=())
        bus.reconfigure(500_000)
        summary = TrafficSniffer(bus, clock, duration=1.0).listen()
        self.assertEqual(summary.frame_count, 0)
        self.assertEqual(summary.unique_ids, [])

    def test_sends_nothing(self):
        clock = FakeClock()
        bus = SimulatedBusTransport(clock=clock, ecus=[SimulatedECU(0x7E0)])
        bus.reconfigure(500_000)
        TrafficSniffer(bus, clock, duration=0.5).listen()
        self.assertEqual(bus.activity.sent, [])


class TestECUDiscovery(unittest.TestCase):

    def _discovery(self, *ecus, **kwargs):
        sim_kwargs = {k: kwargs.pop(k) for k in ("fail_sends",) if k in kwargs}
        self.clock = FakeClock()
        self.bus = SimulatedBusTransport(clock=self.clock, ecus=ecus, traffic_ids=(), **sim_kwargs)
        self.bus.reconfigure(500_000)
        return ECUDiscovery(self.bus, self.clock, **kwargs)

    def test_single_responder(self):
        result = self._discovery(SimulatedECU(0x7E0)).discover()

        self.assertEqual(result.active_ecus, [0x7E8])
        self.assertEqual(result.probed, list(OBD2_REQUEST_IDS))
        self.assertFalse(result.timed_out)
        for ecu in result.active_ecus:
            self.assertEqual(request_id_for(ecu), 0x7E0)

    def test_probe_frames(self):
        self._discovery().discover()
        sent = self.bus.activity.sent
        self.assertEqual([f.arbitration_id for f in sent], list(OBD2_REQUEST_IDS))
        for frame in sent:
            self.assertEqual(frame.data, bytes([0x02, 0x01, 0x00, 0, 0, 0, 0, 0]))

    def test_each_address_probed_once(self):
        self._discovery(SimulatedECU(0x7E0), SimulatedECU(0x7E1)).discover()
        for request_id in OBD2_REQUEST_IDS:
            self.assertEqual(len(self.bus.activity.sent_to(request_id)), 1)

    def test_phase_deadline_stops_sweep(self):
        ecus = (SimulatedECU(0x7E0), SimulatedECU(0x7E1), SimulatedECU(0x7E5))
        result = self._discovery(*ecus, phase_timeout=2.0).discover()

        # 0x7E2..0x7E4 each burn 0.85 s; the check before 0x7E5 sees 2.67 s
        self.assertTrue(result.timed_out)
        self.assertEqual(result.probed, [0x7E0, 0x7E1, 0x7E2, 0x7E3, 0x7E4])
        self.assertEqual(result.active_ecus, [0x7E8, 0x7E9])
        self.assertEqual(self.bus.activity.sent_to(0x7E5), [])

    def test_duplicate_responder_recorded_once(self):
        result = self._discovery(SimulatedECU(0x7E0),
                                 SimulatedECU(0x7E3, response_id=0x7E8)).discover()
        self.assertEqual(result.active_ecus, [0x7E8])

    def test_any_functional_response_counts(self):
        result = self._discovery(SimulatedECU(0x7E0, response_id=0x7EB)).discover()
        self.assertEqual(result.active_ecus, [0x7EB])

    def test_ecu_that_ignores_mode_01(self):
        result = self._discovery(SimulatedECU(0x7E0, supported_pids=None)).discover()
        self.assertEqual(result.active_ecus, [])

    def test_slow_responder_missed(self):
        result = self._discovery(SimulatedECU(0x7EF, latency=0.9)).discover()
        self.assertEqual(result.active_ecus, [])

    def test_send_failures_are_not_fatal(self):
        result = self._discovery(SimulatedECU(0x7E0), fail_sends=True).discover()
        self.assertEqual(result.active_ecus, [])
        self.assertEqual(result.probed, list(OBD2_REQUEST_IDS))

    def test_unrelated_traffic_ignored(self):
        self.clock = FakeClock()
        self.bus = SimulatedBusTransport(clock=self.clock, traffic_ids=(0x0C9, 0x3E9))
        self.bus.reconfigure(500_000)
        result = ECUDiscovery(self.bus, self.clock).discover()
        self.assertEqual(result.active_ecus, [])

    def test_controller_down(self):
        clock = FakeClock()
        bus = SimulatedBusTransport(clock=clock)
        result = ECUDiscovery(bus, clock, addresses=[0x7E0]).discover()
        self.assertEqual(result.active_ecus, [])
        self.assertEqual(bus.activity.sent, [])


if __name__ == "__main__":
    unittest.main()
