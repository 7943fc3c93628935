"""IntegrityEnvelope: wrapping, verification, age and staleness."""

import unittest
from datetime import timedelta

from inventoryd import __version__
from inventoryd.envelope import IntegrityEnvelope

from tests.fakes import COLLECTED_AT, make_report


class TestWrap(unittest.TestCase):

    def test_wrap_stamps_metadata(self):
        envelope = IntegrityEnvelope.wrap(make_report(), now=COLLECTED_AT)
        self.assertTrue(envelope.checksum.startswith("sha256:"))
        self.assertEqual(len(envelope.checksum), len("sha256:") + 64)
        self.assertEqual(envelope.collected_at, COLLECTED_AT)
        self.assertEqual(envelope.collector_version, __version__)

    def test_explicit_collector_version(self):
        envelope = IntegrityEnvelope.wrap(make_report(), collector_version="9.9.9")
        self.assertEqual(envelope.collector_version, "9.9.9")

    def test_fresh_envelope_verifies(self):
        self.assertTrue(IntegrityEnvelope.wrap(make_report()).verify())

    def test_same_report_same_checksum(self):
        a = IntegrityEnvelope.wrap(make_report(), now=COLLECTED_AT)
        b = IntegrityEnvelope.wrap(make_report(), now=COLLECTED_AT + timedelta(hours=1))
        self.assertEqual(a.checksum, b.checksum)


class TestVerify(unittest.TestCase):

    def test_mutated_report_fails(self):
        envelope = IntegrityEnvelope.wrap(make_report(hostname="original"))
        tampered = envelope.model_copy(update={"report": make_report(hostname="tampered")})
        self.assertFalse(tampered.verify())

    def test_mutated_checksum_fails(self):
        envelope = IntegrityEnvelope.wrap(make_report())
        tampered = envelope.model_copy(update={"checksum": "sha256:" + "0" * 64})
        self.assertFalse(tampered.verify())

    def test_round_trip_still_verifies(self):
        envelope = IntegrityEnvelope.wrap(make_report())
        decoded = IntegrityEnvelope.from_json(envelope.to_json())
        self.assertTrue(decoded.verify())
        self.assertEqual(decoded.model_dump(mode="json"), envelope.model_dump(mode="json"))

    def test_wire_format_keys(self):
        envelope = IntegrityEnvelope.wrap(make_report())
        data = envelope.model_dump(mode="json")
        self.assertEqual(set(data), {"checksum", "collected_at", "collector_version", "report"})
        self.assertIsNone(data["report"]["kubernetes"])


class TestAge(unittest.TestCase):

    def setUp(self):
        self.envelope = IntegrityEnvelope.wrap(make_report(), now=COLLECTED_AT)

    def test_age_truncates_to_whole_seconds(self):
        now = COLLECTED_AT + timedelta(seconds=59, milliseconds=999)
        self.assertEqual(self.envelope.age_seconds(now), 59)

    def test_staleness_boundary(self):
        at_limit = COLLECTED_AT + timedelta(seconds=3600)
        past_limit = COLLECTED_AT + timedelta(seconds=3601)
        self.assertFalse(self.envelope.is_stale(3600, at_limit))
        self.assertTrue(self.envelope.is_stale(3600, past_limit))

    def test_zero_threshold(self):
        self.assertFalse(self.envelope.is_stale(0, COLLECTED_AT))
        self.assertTrue(self.envelope.is_stale(0, COLLECTED_AT + timedelta(seconds=1)))

    def test_clock_skew_gives_negative_age_never_stale(self):
        earlier = COLLECTED_AT - timedelta(seconds=30)
        self.assertEqual(self.envelope.age_seconds(earlier), -30)
        self.assertFalse(self.envelope.is_stale(0, earlier))


if __name__ == "__main__":
    unittest.main()
