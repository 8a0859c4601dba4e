import unittest
from pathlib import Path

from src.builder.builder import apply_customizations
from src.environment.context import EnvironmentContext
from src.gate.compatibility import CompatibilityGate
from src.recipes.beats import (
    DEFAULT_RECIPES_DIR,
    PACKETBEAT_PSP_CLUSTER_ROLE,
    beat_cases,
    rename_monitoring_secret,
    rewrite_heartbeat_hosts,
)
from src.recipes.loader import load_recipe

RECIPES_DIR = Path(__file__).resolve().parents[1] / DEFAULT_RECIPES_DIR


def _env(provider: str = "gke", kubernetes_version: str = "1.20.2") -> EnvironmentContext:
    return EnvironmentContext(provider, kubernetes_version, "7.10.0", "e2e")


class BeatCatalogueTests(unittest.TestCase):
    def _cases(self, environment: EnvironmentContext):
        return {case.name: case for case in beat_cases(environment, recipes_dir=RECIPES_DIR)}

    def _build(self, case, suffix: str = "abcd"):
        builder = load_recipe(case.recipe_path, "e2e", suffix, primary_kind=case.recipe_class.primary_kind)
        return apply_customizations(builder, case.all_customizations())

    def test_catalogue(self) -> None:
        names = [case.name for case in beat_cases(_env(), recipes_dir=RECIPES_DIR)]
        self.assertEqual(
            names,
            [
                "filebeat-no-autodiscover",
                "filebeat-autodiscover",
                "filebeat-autodiscover-by-metadata",
                "metricbeat-hosts",
                "stack-monitoring",
                "heartbeat-es-kb-health",
                "auditbeat-hosts",
                "packetbeat-dns-http",
                "journalbeat-hosts",
            ],
        )

    def test_every_recipe_loads(self) -> None:
        for case in beat_cases(_env(), recipes_dir=RECIPES_DIR):
            with self.subTest(case=case.name):
                builder = self._build(case)
                self.assertEqual(builder.primary.kind, "Beat")
                self.assertEqual(builder.primary.declared_version, "7.10.0")
                self.assertTrue(builder.roles)
                described = [v.describe() for v in builder.validations]
                self.assertIn(f"has event from {builder.primary.spec['type']}", described)

    def test_packetbeat_http_depends_on_capability(self) -> None:
        modern = self._build(self._cases(_env("kind", "1.20.2"))["packetbeat-dns-http"])
        legacy = self._build(self._cases(_env("kind", "1.12.10"))["packetbeat-dns-http"])
        modern_queries = [str(v.query) for v in modern.validations]
        legacy_queries = [str(v.query) for v in legacy.validations]
        self.assertIn("event.dataset:http", modern_queries)
        self.assertNotIn("event.dataset:http", legacy_queries)
        self.assertIn("event.dataset:dns", legacy_queries)
        self.assertEqual(legacy.roles, (PACKETBEAT_PSP_CLUSTER_ROLE,))

    def test_auditbeat_skipped_on_kind(self) -> None:
        case = self._cases(_env("kind"))["auditbeat-hosts"]
        gate = CompatibilityGate()
        self.assertIsNotNone(gate.skip_reason("7.10.0", _env("kind"), case.gate_selector))
        self.assertIsNone(gate.skip_reason("7.10.0", _env("gke"), case.gate_selector))

    def test_autodiscover_by_metadata_objects(self) -> None:
        case = self._cases(_env())["filebeat-autodiscover-by-metadata"]
        self.assertEqual(case.additional_objects, ())
        builder = self._build(case)
        labelled, unlabelled = builder.additional_objects
        self.assertEqual(labelled.name, "fb-autodiscover-meta-label-abcd")
        self.assertEqual(labelled.namespace, "e2e")
        self.assertEqual(labelled.metadata["labels"]["log-label"], "true")
        self.assertNotIn("log-label", unlabelled.metadata["labels"])
        kinds = [v.kind.value for v in builder.validations]
        self.assertIn("absence", kinds)

    def test_logging_pods_follow_run_suffix(self) -> None:
        case = self._cases(_env())["filebeat-autodiscover"]
        first = self._build(case, suffix="abcd")
        second = self._build(case, suffix="wxyz")
        self.assertEqual([p.name for p in first.additional_objects], ["fb-autodiscover-abcd"])
        self.assertEqual([p.name for p in second.additional_objects], ["fb-autodiscover-wxyz"])
        described = [v.describe() for v in second.validations]
        self.assertTrue(any("fb-autodiscover-wxyz" in text for text in described))
        self.assertFalse(any("fb-autodiscover-abcd" in text for text in described))

    def test_stack_monitoring_covers_both_beats(self) -> None:
        builder = self._build(self._cases(_env())["stack-monitoring"])
        self.assertEqual([beat.name for beat in builder.siblings], ["filebeat-abcd"])
        described = [v.describe() for v in builder.validations]
        self.assertIn("has event from metricbeat", described)
        self.assertIn("has event from filebeat", described)

        objects = builder.objects_to_apply()
        refs = [obj.ref for obj in objects]
        self.assertEqual(refs[-2:], ["Beat/e2e/filebeat-abcd", "Beat/e2e/metricbeat-abcd"])
        self.assertLess(refs.index(f"ServiceAccount/e2e/{builder.service_account_name}"), refs.index("Beat/e2e/filebeat-abcd"))
        filebeat = objects[-2].spec["daemonSet"]["podTemplate"]["spec"]
        self.assertEqual(filebeat["serviceAccountName"], builder.service_account_name)
        metricbeat = objects[-1].spec["deployment"]["podTemplate"]["spec"]
        self.assertEqual(metricbeat["serviceAccountName"], builder.service_account_name)

    def test_monitoring_secret_is_suffixed(self) -> None:
        builder = load_recipe(RECIPES_DIR / "stack_monitoring.yaml", "e2e", "abcd", primary_kind="Beat")
        renamed = rename_monitoring_secret(builder)
        container = renamed.primary.spec["deployment"]["podTemplate"]["spec"]["containers"][0]
        ref = container["env"][1]["valueFrom"]["secretKeyRef"]
        self.assertEqual(ref["name"], "elasticsearch-abcd-es-elastic-user")
        again = rename_monitoring_secret(renamed)
        self.assertEqual(
            again.primary.spec["deployment"]["podTemplate"]["spec"]["containers"][0]["env"][1]["valueFrom"]["secretKeyRef"]["name"],
            "elasticsearch-abcd-es-elastic-user",
        )

    def test_heartbeat_hosts_follow_namespace(self) -> None:
        builder = load_recipe(RECIPES_DIR / "heartbeat_es_kb_health.yaml", "e2e", "abcd", primary_kind="Beat")
        monitors = rewrite_heartbeat_hosts(builder).primary.spec["config"]["heartbeat.monitors"]
        self.assertEqual(monitors[0]["hosts"], ["elasticsearch-abcd-es-http.e2e.svc:9200"])
        self.assertEqual(monitors[1]["hosts"], ["kibana-abcd-kb-http.e2e.svc:5601"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
