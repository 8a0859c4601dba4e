import tempfile
import unittest
import unittest.mock
from pathlib import Path

from src.common.errors import LoadError, SkipCondition, VersionParseError
from src.environment.context import EnvironmentContext, minor_version
from src.gate.compatibility import CompatibilityGate, DEFAULT_RULES, GateRules


def _env(provider: str = "gke", kubernetes_version: str = "1.20.2", stack_version: str = "7.10.0") -> EnvironmentContext:
    return EnvironmentContext(provider=provider, kubernetes_version=kubernetes_version, stack_version=stack_version)


class CompatibilityGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.gate = CompatibilityGate(DEFAULT_RULES)

    def test_runs_when_versions_align(self) -> None:
        self.assertIsNone(self.gate.skip_reason("7.10.0", _env(), "beat.filebeat"))
        self.assertIsNone(self.gate.skip_reason("7.9.3", _env(), "beat.filebeat"))
        self.assertIsNone(self.gate.skip_reason(None, _env(), "beat.filebeat"))

    def test_skips_resource_newer_than_stack(self) -> None:
        reason = self.gate.skip_reason("7.11.0", _env(), "beat.filebeat")
        self.assertIsNotNone(reason)
        self.assertIn("after stack version", reason)
        self.assertTrue(self.gate.should_skip("8.0.0-SNAPSHOT", _env(), "beat"))

    def test_snapshot_of_same_version_runs(self) -> None:
        self.assertFalse(self.gate.should_skip("7.10.0-SNAPSHOT", _env(), "beat"))

    def test_malformed_version_propagates(self) -> None:
        with self.assertRaises(VersionParseError):
            self.gate.skip_reason("seven", _env(), "beat")
        with self.assertRaises(VersionParseError):
            self.gate.skip_reason("7.10.0", _env(stack_version="latest"), "beat")

    def test_provider_exclusion_is_hierarchical(self) -> None:
        self.assertTrue(self.gate.should_skip("7.10.0", _env(provider="ocp"), "beat.filebeat"))
        self.assertTrue(self.gate.should_skip("7.10.0", _env(provider="kind"), "beat.auditbeat"))
        self.assertFalse(self.gate.should_skip("7.10.0", _env(provider="kind"), "beat.filebeat"))
        self.assertFalse(self.gate.should_skip("7.10.0", _env(provider="kind"), "beat.auditbeatx"))
        self.assertFalse(self.gate.should_skip("7.10.0", _env(provider="ocp"), "generic"))

    def test_capability_gap(self) -> None:
        old_kind = _env(provider="kind", kubernetes_version="v1.12.10")
        self.assertFalse(self.gate.has_capability(old_kind, "http-tracing"))
        self.assertTrue(self.gate.has_capability(_env(provider="kind"), "http-tracing"))
        reason = self.gate.skip_reason("7.10.0", old_kind, "beat.packetbeat", ["http-tracing"])
        self.assertIn("lacks capability http-tracing", reason)

    def test_check_raises_skip_condition(self) -> None:
        with self.assertRaises(SkipCondition) as ctx:
            self.gate.check("7.11.0", _env(), "beat.filebeat")
        self.assertEqual(ctx.exception.kind, "skipped")
        self.assertIn("after stack version", str(ctx.exception))
        self.assertIsNone(self.gate.check("7.10.0", _env(), "beat.filebeat"))

    def test_rules_from_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "rules.yaml"
            path.write_text(
                "exclusions:\n"
                "  - provider: aks\n"
                "    recipe_classes: [beat.journalbeat]\n"
                "    reason: no journald\n"
                "capability_gaps:\n"
                "  - provider: kind\n"
                "    kubernetes_version: '1.15'\n"
                "    capabilities: [host-network]\n",
                encoding="utf-8",
            )
            gate = CompatibilityGate(GateRules.from_yaml(path))
        reason = gate.skip_reason(None, _env(provider="aks"), "beat.journalbeat")
        self.assertIn("no journald", reason)
        self.assertFalse(gate.should_skip(None, _env(provider="ocp"), "beat"))
        self.assertFalse(gate.has_capability(_env(provider="kind", kubernetes_version="1.15.0"), "host-network"))

    def test_invalid_rules_raise_load_error(self) -> None:
        with self.assertRaises(LoadError):
            GateRules.from_mapping({"exclusions": [{"recipe_classes": ["beat"]}]})
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "rules.yaml"
            path.write_text("- just\n- a list\n", encoding="utf-8")
            with self.assertRaises(LoadError):
                GateRules.from_yaml(path)


class EnvironmentContextTests(unittest.TestCase):
    def test_minor_version(self) -> None:
        self.assertEqual(minor_version("v1.12.3"), "1.12")
        self.assertEqual(minor_version("1.20"), "1.20")
        self.assertEqual(_env(kubernetes_version="1.18.0").kubernetes_minor, "1.18")

    def test_from_env_requires_stack_version(self) -> None:
        with unittest.mock.patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(RuntimeError):
                EnvironmentContext.from_env()

    def test_from_env_reads_variables(self) -> None:
        variables = {
            "E2E_PROVIDER": "gke",
            "E2E_KUBERNETES_VERSION": "1.19.4",
            "E2E_STACK_VERSION": "7.10.1",
            "E2E_NAMESPACE": "e2e-venus",
        }
        with unittest.mock.patch.dict("os.environ", variables, clear=True):
            env = EnvironmentContext.from_env(provider="kind")
        self.assertEqual(env.provider, "kind")
        self.assertEqual(env.kubernetes_version, "1.19.4")
        self.assertEqual(env.stack_version, "7.10.1")
        self.assertEqual(env.namespace, "e2e-venus")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
