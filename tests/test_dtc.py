"""
DTC decoding and Mode 03 collection tests.
"""

import logging
import unittest

from scancore.core import DtcCategory, Frame
from scancore.dtc import (
    DTCCollector, DTCDecoder, PaddingStyle, pad_legacy, render_code,
)
from scancore.simulator import FakeClock, SimulatedBusTransport, SimulatedECU

logging.basicConfig(level=logging.WARNING)

P0123_PAYLOAD = bytes([0x05, 0x43, 0x01, 0x23, 0x00, 0x00, 0x00, 0x00])


class TestDTCDecoder(unittest.TestCase):
    """Byte pair -> code"""

    def setUp(self):
        self.decoder = DTCDecoder()

    def test_powertrain_pair(self):
        dtc = self.decoder.decode_pair(0x01, 0x23, 0x7E8)
        self.assertEqual(dtc.category, DtcCategory.POWERTRAIN)
        self.assertEqual(dtc.value, 0x123)
        self.assertEqual(dtc.code, "P0123")
        self.assertEqual(dtc.ecu_id, 0x7E8)
        self.assertFalse(dtc.is_pending)

    def test_chassis_pair(self):
        dtc = self.decoder.decode_pair(0x43, 0x10, 0x7E8)
        self.assertEqual(dtc.category, DtcCategory.CHASSIS)
        self.assertEqual(dtc.value, 0x310)
        self.assertEqual(dtc.code, "C0310")

    def test_body_and_network_pairs(self):
        body = self.decoder.decode_pair(0x80, 0x01, 0x7E9)
        network = self.decoder.decode_pair(0xC1, 0x00, 0x7E9)
        self.assertEqual((body.category, body.code), (DtcCategory.BODY, "B0001"))
        self.assertEqual((network.category, network.code), (DtcCategory.NETWORK, "U0100"))

    def test_top_of_value_range(self):
        dtc = self.decoder.decode_pair(0x3F, 0xFF, 0x7E8)
        self.assertEqual(dtc.value, 0x3FFF)
        self.assertEqual(dtc.code, "P3FFF")

    def test_zero_pair_is_skipped(self):
        self.assertIsNone(self.decoder.decode_pair(0x00, 0x00, 0x7E8))

    def test_response_payload(self):
        codes = self.decoder.decode(P0123_PAYLOAD, 0x7E8)
        self.assertEqual([c.code for c in codes], ["P0123"])

    def test_several_codes_keep_order(self):
        payload = bytes([0x06, 0x43, 0x01, 0x33, 0x43, 0x10, 0x80, 0x01])
        codes = self.decoder.decode(payload, 0x7EA)
        self.assertEqual([c.code for c in codes], ["P0133", "C0310", "B0001"])
        self.assertTrue(all(c.ecu_id == 0x7EA for c in codes))

    def test_short_payloads_yield_nothing(self):
        for payload in (b"", b"\x01", b"\x02\x43"):
            with self.subTest(payload=payload):
                self.assertEqual(self.decoder.decode(payload, 0x7E8), [])

    def test_trailing_odd_byte_ignored(self):
        codes = self.decoder.decode(bytes([0x03, 0x43, 0x01, 0x23, 0x02]), 0x7E8)
        self.assertEqual([c.code for c in codes], ["P0123"])


class TestPadding(unittest.TestCase):
    """Both zero-padding interpretations, tested explicitly"""

    def test_legacy_inserts_after_letter(self):
        self.assertEqual(pad_legacy("P1"), "P0001")
        self.assertEqual(pad_legacy("C12"), "C0012")
        self.assertEqual(pad_legacy("B123"), "B0123")
        self.assertEqual(pad_legacy("U1234"), "U1234")

    def test_legacy_never_truncates(self):
        self.assertEqual(pad_legacy("P12345"), "P12345")

    def test_standard_left_pads_four_digits(self):
        self.assertEqual(render_code(DtcCategory.POWERTRAIN, 0x1, PaddingStyle.STANDARD), "P0001")
        self.assertEqual(render_code(DtcCategory.CHASSIS, 0x310, PaddingStyle.STANDARD), "C0310")
        self.assertEqual(render_code(DtcCategory.NETWORK, 0x3FFF, PaddingStyle.STANDARD), "U3FFF")

    def test_legacy_renders_uppercase_hex(self):
        self.assertEqual(render_code(DtcCategory.BODY, 0xABC, PaddingStyle.LEGACY), "B0ABC")

    def test_styles_agree_on_every_14_bit_value(self):
        for category in DtcCategory:
            for value in range(0x4000):
                legacy = render_code(category, value, PaddingStyle.LEGACY)
                standard = render_code(category, value, PaddingStyle.STANDARD)
                if legacy != standard:
                    self.fail(f"{category} 0x{value:X}: {legacy} != {standard}")

    def test_standard_decoder_on_response_payload(self):
        codes = DTCDecoder(PaddingStyle.STANDARD).decode(P0123_PAYLOAD, 0x7E8)
        self.assertEqual([c.code for c in codes], ["P0123"])


class TestDTCCollector(unittest.TestCase):

    def _collector(self, *ecus, **sim_kwargs):
        self.clock = FakeClock()
        sim_kwargs.setdefault("traffic_ids", ())
        self.bus = SimulatedBusTransport(clock=self.clock, ecus=ecus, **sim_kwargs)
        self.bus.reconfigure(500_000)
        return DTCCollector(self.bus, clock=self.clock)

    def test_reads_codes_from_responder(self):
        collector = self._collector(SimulatedECU(0x7E0, stored_codes=P0123_PAYLOAD))
        codes = collector.collect([0x7E8])

        self.assertEqual([c.code for c in codes], ["P0123"])
        request = self.bus.activity.sent_to(0x7E0)
        self.assertEqual(len(request), 1)
        self.assertEqual(request[0].data, bytes([0x01, 0x03, 0, 0, 0, 0, 0, 0]))

    def test_silent_ecu_yields_no_codes(self):
        collector = self._collector(SimulatedECU(0x7E0, stored_codes=None))
        self.assertEqual(collector.collect([0x7E8]), [])
        # full 1 s wait plus the 100 ms pause
        self.assertAlmostEqual(self.clock.now(), 1.1, places=6)

    def test_short_response_yields_no_codes(self):
        collector = self._collector(SimulatedECU(0x7E0, stored_codes=bytes([0x01, 0x43])))
        self.assertEqual(collector.collect([0x7E8]), [])

    def test_send_failure_is_not_fatal(self):
        collector = self._collector(SimulatedECU(0x7E0, stored_codes=P0123_PAYLOAD), fail_sends=True)
        self.assertEqual(collector.collect([0x7E8]), [])

    def test_other_traffic_is_ignored(self):
        collector = self._collector(SimulatedECU(0x7E0, stored_codes=P0123_PAYLOAD, latency=0.3),
                                    traffic_ids=(0x0C9, 0x7E9), traffic_interval=0.02)
        codes = collector.collect([0x7E8])
        self.assertEqual([c.code for c in codes], ["P0123"])

    def test_codes_from_several_ecus_in_discovery_order(self):
        collector = self._collector(
            SimulatedECU(0x7E1, stored_codes=bytes([0x04, 0x43, 0x43, 0x10, 0, 0, 0, 0])),
            SimulatedECU(0x7E0, stored_codes=P0123_PAYLOAD),
        )
        codes = collector.collect([0x7E9, 0x7E8])
        self.assertEqual([(c.code, c.ecu_id) for c in codes],
                         [("C0310", 0x7E9), ("P0123", 0x7E8)])

    def test_no_ecus_sends_nothing(self):
        collector = self._collector()
        self.assertEqual(collector.collect([]), [])
        self.assertEqual(self.bus.activity.sent, [])

    def test_request_frame_layout(self):
        frame = Frame.request(0x7E0, 0x03)
        self.assertEqual(frame.data, bytes([0x01, 0x03, 0, 0, 0, 0, 0, 0]))


if __name__ == "__main__":
    unittest.main()
