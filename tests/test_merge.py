"""Tree merge and field-path removal."""

import unittest

from inventoryd.merge import deep_merge, remove_field_path


class TestDeepMerge(unittest.TestCase):

    def test_nested_mappings_merge_key_by_key(self):
        base = {"a": 1, "b": {"x": 1, "y": 2}}
        overlay = {"b": {"y": 3, "z": 4}, "c": 5}
        self.assertEqual(
            deep_merge(base, overlay),
            {"a": 1, "b": {"x": 1, "y": 3, "z": 4}, "c": 5}
        )

    def test_lists_replace_wholesale(self):
        self.assertEqual(deep_merge({"l": [1, 2, 3]}, {"l": [9]}), {"l": [9]})

    def test_null_overlay_value_keeps_base(self):
        self.assertEqual(deep_merge({"k": "v"}, {"k": None}), {"k": "v"})

    def test_null_overlay_keeps_whole_base(self):
        self.assertEqual(deep_merge({"k": "v"}, None), {"k": "v"})

    def test_null_for_new_key_is_inserted(self):
        self.assertEqual(deep_merge({"a": 1}, {"b": None}), {"a": 1, "b": None})

    def test_type_mismatch_overlay_wins(self):
        self.assertEqual(deep_merge({"k": {"nested": 1}}, {"k": "flat"}), {"k": "flat"})
        self.assertEqual(deep_merge({"k": "flat"}, {"k": {"nested": 1}}), {"k": {"nested": 1}})

    def test_scalar_replaces(self):
        self.assertEqual(deep_merge({"n": 1}, {"n": 2}), {"n": 2})

    def test_inputs_not_mutated(self):
        base = {"b": {"x": [1]}}
        overlay = {"b": {"y": [2]}}
        merged = deep_merge(base, overlay)
        merged["b"]["x"].append(99)
        merged["b"]["y"].append(99)
        self.assertEqual(base, {"b": {"x": [1]}})
        self.assertEqual(overlay, {"b": {"y": [2]}})

    def test_later_overlay_wins(self):
        tree = {}
        for overlay in ({"k": 1}, {"k": 2}, {"k": 3}):
            tree = deep_merge(tree, overlay)
        self.assertEqual(tree, {"k": 3})


class TestRemoveFieldPath(unittest.TestCase):

    def setUp(self):
        self.tree = {"secrets": {"age_keys": ["k"], "provider": "sops"}, "hostname": "h"}

    def test_removes_leaf(self):
        self.assertEqual(
            remove_field_path(self.tree, "secrets.age_keys"),
            {"secrets": {"provider": "sops"}, "hostname": "h"}
        )

    def test_removes_top_level(self):
        self.assertEqual(remove_field_path(self.tree, "secrets"), {"hostname": "h"})

    def test_missing_path_is_noop(self):
        self.assertEqual(remove_field_path(self.tree, "nope.nothing"), self.tree)
        self.assertEqual(remove_field_path(self.tree, "secrets.nothing"), self.tree)

    def test_through_non_mapping_is_noop(self):
        self.assertEqual(remove_field_path(self.tree, "hostname.length"), self.tree)
        self.assertEqual(remove_field_path(self.tree, "secrets.age_keys.0"), self.tree)

    def test_empty_path_is_noop(self):
        self.assertEqual(remove_field_path(self.tree, ""), self.tree)

    def test_input_not_mutated(self):
        remove_field_path(self.tree, "secrets.age_keys")
        self.assertIn("age_keys", self.tree["secrets"])


if __name__ == "__main__":
    unittest.main()
