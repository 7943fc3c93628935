"""
Declared identity tests: base loading, overlay ordering and failure policy,
schema strictness and redaction.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

from inventoryd.errors import IdentityError
from inventoryd.identity import DeclaredIdentity, IdentityLoader, RedactedIdentity, dump_yaml

FIXTURES = Path(__file__).parent / "fixtures"
PRIVATE = ["secrets.age_keys", "secrets.age_key_file", "nix.attic"]


class IdentityTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.base = self.root / "node.yaml"
        shutil.copy(FIXTURES / "node.yaml", self.base)
        self.default_dir = self.root / "identity.d"
        self.default_dir.mkdir()
        self.extra_dir = self.root / "extra"
        self.extra_dir.mkdir()
        self.loader = IdentityLoader(self.default_dir)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, directory: Path, name: str, content: str) -> Path:
        path = directory / name
        path.write_text(content, encoding="utf-8")
        return path


class TestBaseLoad(IdentityTestCase):

    def test_load_base(self):
        identity = self.loader.load(self.base)
        self.assertIsInstance(identity, DeclaredIdentity)
        self.assertEqual(identity.hostname, "testbox")
        self.assertEqual(identity.profile, "workstation")
        self.assertEqual(identity.network.interfaces["eth0"].gateway, "10.0.0.1")

    def test_numeric_version_read_as_string(self):
        self.assertEqual(self.loader.load(self.base).version, "1")

    def test_defaults_fill_missing_sections(self):
        self.base.write_text("version: '1'\nprofile: server\nhostname: bare\n", encoding="utf-8")
        identity = self.loader.load(self.base)
        self.assertEqual(identity.user.shell, "blzsh")
        self.assertEqual(identity.secrets.provider, "sops")
        self.assertEqual(identity.nix.trusted_users, ["root"])

    def test_missing_base_is_fatal(self):
        with self.assertRaises(IdentityError):
            self.loader.load(self.root / "absent.yaml")
        with self.assertRaises(IdentityError):
            self.loader.load_with_overlays(self.root / "absent.yaml")

    def test_malformed_base_is_fatal(self):
        self.base.write_text("hostname: [unclosed\n", encoding="utf-8")
        with self.assertRaises(IdentityError):
            self.loader.load_with_overlays(self.base)

    def test_missing_required_field(self):
        self.base.write_text("version: '1'\nprofile: server\n", encoding="utf-8")
        with self.assertRaises(IdentityError):
            self.loader.load(self.base)

    def test_unknown_field_rejected(self):
        with open(self.base, "a", encoding="utf-8") as f:
            f.write("colour: blue\n")
        with self.assertRaises(IdentityError) as ctx:
            self.loader.load(self.base)
        self.assertIn("colour", str(ctx.exception))

    def test_out_of_range_value_rejected(self):
        with open(self.base, "a", encoding="utf-8") as f:
            f.write("  maintenance_windows:\n    - day: sunday\n      start_hour: 24\n")
        with self.assertRaises(IdentityError):
            self.loader.load(self.base)


class TestOverlays(IdentityTestCase):

    def test_files_pooled_and_sorted_by_name(self):
        self.write(self.default_dir, "02-y.yaml", "fleet: {environment: y}\n")
        self.write(self.default_dir, "00-z.yaml", "fleet: {environment: z}\n")
        self.write(self.extra_dir, "01-x.yml", "fleet: {environment: x}\n")

        files = self.loader.overlay_files([self.extra_dir])
        self.assertEqual([p.name for p in files], ["00-z.yaml", "01-x.yml", "02-y.yaml"])

        identity = self.loader.load_with_overlays(self.base, [self.extra_dir])
        self.assertEqual(identity.fleet.environment, "y")

    def test_same_name_in_two_dirs_orders_by_path(self):
        self.write(self.default_dir, "10-env.yaml", "fleet: {environment: default}\n")
        self.write(self.extra_dir, "10-env.yaml", "fleet: {environment: extra}\n")
        files = self.loader.overlay_files([self.extra_dir])
        self.assertEqual(files, sorted(files, key=lambda p: str(p)))

    def test_non_yaml_files_ignored(self):
        self.write(self.default_dir, "README.md", "fleet: {environment: nope}\n")
        self.write(self.default_dir, "10-env.yaml.bak", "fleet: {environment: nope}\n")
        (self.default_dir / "20-dir.yaml").mkdir()
        self.assertEqual(self.loader.overlay_files(), [])
        self.assertEqual(self.loader.load_with_overlays(self.base).fleet.environment, "lab")

    def test_missing_overlay_dirs_ignored(self):
        loader = IdentityLoader(self.root / "nowhere")
        identity = loader.load_with_overlays(self.base, [self.root / "also-nowhere"])
        self.assertEqual(identity.hostname, "testbox")

    def test_nested_merge_keeps_sibling_keys(self):
        self.write(self.default_dir, "10-user.yaml", "user:\n  shell: zsh\n")
        identity = self.loader.load_with_overlays(self.base)
        self.assertEqual(identity.user.shell, "zsh")
        self.assertEqual(identity.user.name, "alice")
        self.assertEqual(identity.user.uid, 1000)

    def test_lists_replaced_not_appended(self):
        self.write(self.default_dir, "10-dns.yaml", "network:\n  dns_servers: [8.8.8.8]\n")
        identity = self.loader.load_with_overlays(self.base)
        self.assertEqual(identity.network.dns_servers, ["8.8.8.8"])
        self.assertEqual(identity.network.firewall.allowed_tcp_ports, [22, 9100])

    def test_null_value_keeps_base(self):
        self.write(self.default_dir, "10-null.yaml", "user:\n  email: null\n")
        identity = self.loader.load_with_overlays(self.base)
        self.assertEqual(identity.user.email, "alice@example.com")

    def test_empty_overlay_is_noop(self):
        self.write(self.default_dir, "10-empty.yaml", "")
        self.write(self.default_dir, "20-comment.yaml", "# nothing here\n")
        identity = self.loader.load_with_overlays(self.base)
        self.assertEqual(identity, self.loader.load(self.base))

    def test_malformed_overlay_skipped(self):
        self.write(self.default_dir, "10-bad.yaml", "fleet: [unclosed\n")
        self.write(self.default_dir, "20-good.yaml", "fleet: {environment: prod}\n")
        with self.assertLogs("inventoryd.events", level="WARNING") as logs:
            identity = self.loader.load_with_overlays(self.base)
        self.assertEqual(identity.fleet.environment, "prod")
        self.assertTrue(any("OVERLAY_SKIPPED" in line for line in logs.output))

    def test_non_mapping_overlay_skipped(self):
        self.write(self.default_dir, "10-list.yaml", "- just\n- a list\n")
        self.write(self.default_dir, "20-scalar.yaml", "hello\n")
        with self.assertLogs("inventoryd.events", level="WARNING") as logs:
            identity = self.loader.load_with_overlays(self.base)
        self.assertEqual(identity.hostname, "testbox")
        self.assertEqual(sum("OVERLAY_SKIPPED" in line for line in logs.output), 2)

    def test_unknown_field_in_overlay_fails_merged_decode(self):
        self.write(self.default_dir, "10-typo.yaml", "fleet:\n  enviroment: prod\n")
        with self.assertRaises(IdentityError):
            self.loader.load_with_overlays(self.base)

    def test_overlay_type_error_fails_merged_decode(self):
        self.write(self.default_dir, "10-type.yaml", "user:\n  uid: not-a-number\n")
        with self.assertRaises(IdentityError):
            self.loader.load_with_overlays(self.base)

    def test_overlay_can_supply_required_field(self):
        self.base.write_text("version: '1'\nprofile: server\n", encoding="utf-8")
        self.write(self.default_dir, "00-host.yaml", "hostname: from-overlay\n")
        self.assertEqual(self.loader.load_with_overlays(self.base).hostname, "from-overlay")


class TestRedaction(IdentityTestCase):

    def setUp(self):
        super().setUp()
        self.identity = self.loader.load(self.base)

    def test_private_fields_absent(self):
        redacted = self.loader.redact(self.identity, PRIVATE)
        self.assertIsInstance(redacted, RedactedIdentity)
        self.assertNotIn("age_keys", redacted.data["secrets"])
        self.assertNotIn("age_key_file", redacted.data["secrets"])
        self.assertNotIn("attic", redacted.data["nix"])
        self.assertEqual(redacted.data["secrets"]["provider"], "sops")
        self.assertEqual(redacted.data["nix"]["trusted_users"], ["root", "alice"])
        self.assertEqual(redacted.removed_paths, tuple(PRIVATE))

    def test_secret_values_not_serialized(self):
        text = self.loader.redact(self.identity, PRIVATE).to_json()
        self.assertNotIn("age1qqqq", text)
        self.assertNotIn("/var/lib/sops/age/keys.txt", text)
        self.assertNotIn("attic-token", text)
        self.assertIn("testbox", text)

    def test_nonexistent_path_ignored(self):
        redacted = self.loader.redact(self.identity, ["secrets.nope", "no.such.path"])
        self.assertEqual(redacted.data, self.identity.to_tree())

    def test_source_identity_untouched(self):
        self.loader.redact(self.identity, PRIVATE)
        self.assertEqual(len(self.identity.secrets.age_keys), 1)
        self.assertEqual(self.identity.nix.attic.token_file, "/run/secrets/attic-token")

    def test_removing_required_field_fails(self):
        with self.assertRaises(IdentityError):
            self.loader.redact(self.identity, ["hostname"])

    def test_to_dict_is_a_copy(self):
        redacted = self.loader.redact(self.identity, PRIVATE)
        copy = redacted.to_dict()
        copy["hostname"] = "changed"
        self.assertEqual(redacted.hostname, "testbox")


class TestDumpYaml(IdentityTestCase):

    def test_schema_order_preserved(self):
        text = dump_yaml(self.loader.load(self.base).to_tree())
        self.assertTrue(text.startswith("version: '1'\nprofile: workstation\nhostname: testbox\n"))


if __name__ == "__main__":
    unittest.main()
