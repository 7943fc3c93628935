"""
Canonicalization and checksum tests.

Checksums must be stable across key order and across a round trip through
the persisted JSON, or a restarted daemon would reject its own report file.
"""

import unittest

from inventoryd import canonicalize, canonicalize_str, checksum_of, sha256_hash, verify_hash
from inventoryd.envelope import IntegrityEnvelope

from tests.fakes import make_report

EMPTY_SHA256 = "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestCanonicalization(unittest.TestCase):

    def test_key_ordering(self):
        a = {"b": 1, "a": {"y": [3, 1], "x": None}}
        b = {"a": {"x": None, "y": [3, 1]}, "b": 1}
        self.assertEqual(canonicalize(a), canonicalize(b))
        self.assertEqual(canonicalize_str(a), '{"a":{"x":null,"y":[3,1]},"b":1}')

    def test_non_ascii_emitted_as_utf8(self):
        self.assertEqual(canonicalize({"name": "café"}), '{"name":"café"}'.encode("utf-8"))

    def test_rejects_non_finite_floats(self):
        with self.assertRaises(ValueError):
            canonicalize({"load": float("nan")})

    def test_rejects_raw_datetimes(self):
        report = make_report()
        with self.assertRaises(ValueError):
            canonicalize({"timestamp": report.timestamp})


class TestHashing(unittest.TestCase):

    def test_prefixed_lowercase_hex(self):
        self.assertEqual(sha256_hash(b""), EMPTY_SHA256)
        self.assertEqual(sha256_hash(""), EMPTY_SHA256)

    def test_verify_hash(self):
        self.assertTrue(verify_hash(EMPTY_SHA256, b""))
        self.assertFalse(verify_hash(EMPTY_SHA256, b"x"))

    def test_unknown_algorithm_never_verifies(self):
        digest = EMPTY_SHA256.split(":", 1)[1]
        self.assertFalse(verify_hash("md5:" + digest, b""))
        self.assertFalse(verify_hash(digest, b""))

    def test_model_and_decoded_json_hash_identically(self):
        report = make_report()
        envelope = IntegrityEnvelope.wrap(report)
        decoded = IntegrityEnvelope.from_json(envelope.to_json())
        self.assertEqual(checksum_of(report), checksum_of(decoded.report))
        self.assertEqual(checksum_of(report), checksum_of(report.model_dump(mode="json")))

    def test_different_reports_differ(self):
        self.assertNotEqual(
            checksum_of(make_report(hostname="a")),
            checksum_of(make_report(hostname="b"))
        )


if __name__ == "__main__":
    unittest.main()
