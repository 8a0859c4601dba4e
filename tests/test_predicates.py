import unittest

from src.validations.predicates import (
    DEFAULT_INDEX,
    MONITORING_INDEX,
    PredicateKind,
    has_event,
    has_event_from_beat,
    has_event_from_pod,
    has_message_containing,
    has_monitoring_event,
    lookup_field,
    no_event,
    no_message_containing,
    parse_query,
    validation_from_dict,
)


class QueryParsingTests(unittest.TestCase):
    def test_parses_conjunction(self) -> None:
        query = parse_query('event.dataset:flow agent.type:packetbeat message:"hello world"')
        self.assertEqual([t.field for t in query.terms], ["event.dataset", "agent.type", "message"])
        self.assertEqual(query.terms[2].value, "hello world")
        self.assertEqual(str(query), "event.dataset:flow AND agent.type:packetbeat AND message:hello world")

    def test_rejects_malformed_terms(self) -> None:
        for text in ["", "   ", "dataset", ":flow", "event.dataset:"]:
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    parse_query(text)

    def test_unbalanced_quote_names_the_query(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            parse_query('message:"oops')
        self.assertIn("cannot parse query 'message:\"oops'", str(ctx.exception))


class RecordMatchingTests(unittest.TestCase):
    def test_lookup_nested_flat_and_mixed(self) -> None:
        nested = {"event": {"dataset": "flow"}}
        flat = {"event.dataset": "flow"}
        mixed = {"kubernetes": {"pod.name": "web-1"}}
        self.assertEqual(lookup_field(nested, "event.dataset"), "flow")
        self.assertEqual(lookup_field(flat, "event.dataset"), "flow")
        self.assertEqual(lookup_field(mixed, "kubernetes.pod.name"), "web-1")
        self.assertFalse(parse_query("event.dataset:flow").matches({"event": "flow"}))

    def test_exact_and_list_values(self) -> None:
        query = parse_query("event.dataset:flow")
        self.assertTrue(query.matches({"event": {"dataset": "flow"}}))
        self.assertFalse(query.matches({"event": {"dataset": "flows"}}))
        self.assertTrue(parse_query("tags:beats").matches({"tags": ["k8s", "beats"]}))
        self.assertTrue(parse_query("http.response.status_code:200").matches({"http": {"response": {"status_code": 200}}}))
        self.assertTrue(parse_query("monitor.up:true").matches({"monitor": {"up": True}}))

    def test_conjunction_requires_all_terms(self) -> None:
        query = parse_query("event.dataset:dns agent.type:packetbeat")
        self.assertTrue(query.matches({"event": {"dataset": "dns"}, "agent": {"type": "packetbeat"}}))
        self.assertFalse(query.matches({"event": {"dataset": "dns"}, "agent": {"type": "filebeat"}}))

    def test_message_containment(self) -> None:
        validation = has_message_containing("marker-abc")
        self.assertTrue(validation.query.matches({"message": "line marker-abc 7"}))
        self.assertFalse(validation.query.matches({"message": "line marker-xyz 7"}))
        self.assertFalse(validation.query.matches({"message": 42}))


class ValidationConstructorTests(unittest.TestCase):
    def test_kinds_and_indices(self) -> None:
        self.assertEqual(has_event("a:b").kind, PredicateKind.PRESENCE)
        self.assertEqual(has_event("a:b").index, DEFAULT_INDEX)
        self.assertEqual(no_event("a:b").kind, PredicateKind.ABSENCE)
        self.assertEqual(has_monitoring_event("type:beats_stats").index, MONITORING_INDEX)
        self.assertFalse(no_message_containing("secret").must_hold)

    def test_descriptions(self) -> None:
        self.assertEqual(has_event_from_beat("filebeat").describe(), "has event from filebeat")
        self.assertEqual(has_event_from_pod("web-1").describe(), "has event from pod web-1")
        self.assertEqual(no_event("event.dataset:bad").describe(), "no event in *beat* matching event.dataset:bad")
        self.assertTrue(has_event_from_pod("web-1").query.matches({"kubernetes": {"pod": {"name": "web-1"}}}))

    def test_from_dict(self) -> None:
        validation = validation_from_dict({"kind": "absence", "query": "event.dataset:bad", "index": "logs-*"})
        self.assertEqual(validation.kind, PredicateKind.ABSENCE)
        self.assertEqual(validation.index, "logs-*")
        contains = validation_from_dict({"contains": "boom", "field": "error.message"})
        self.assertTrue(contains.must_hold)
        self.assertTrue(contains.query.terms[0].contains)
        self.assertEqual(contains.query.terms[0].field, "error.message")
        with self.assertRaises(ValueError):
            validation_from_dict({"kind": "sometimes", "query": "a:b"})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
