"""Fleet node data types."""

import unittest

from inventoryd.identity import DeclaredIdentity
from inventoryd.node import DriftItem, DriftSeverity, Node, NodeStatus

from tests.fakes import COLLECTED_AT, make_report


class TestNode(unittest.TestCase):

    def setUp(self):
        self.identity = DeclaredIdentity.model_validate(
            {"version": "1", "profile": "workstation", "hostname": "testbox"}
        )

    def test_defaults(self):
        node = Node(identity=self.identity, first_seen=COLLECTED_AT)
        self.assertIsNone(node.report)
        self.assertEqual(node.status, NodeStatus.UNKNOWN)
        self.assertEqual(node.drift, [])

    def test_json_shape(self):
        node = Node(
            identity=self.identity,
            report=make_report(),
            status=NodeStatus.DEGRADED,
            first_seen=COLLECTED_AT,
            last_seen=COLLECTED_AT,
            drift=[DriftItem(category="os", field="version", expected="24.11",
                             actual="24.05", severity=DriftSeverity.WARNING)],
        )
        data = node.model_dump(mode="json")
        self.assertEqual(data["status"], "degraded")
        self.assertEqual(data["drift"][0]["severity"], "warning")
        self.assertEqual(data["report"]["hostname"], "testbox")
        self.assertEqual(Node.model_validate(data).model_dump(mode="json"), data)


if __name__ == "__main__":
    unittest.main()
