import json
import unittest
from unittest import mock

import httpx

from src.telemetry.backend import BackendError
from src.telemetry.elasticsearch import BackendOptions, ElasticsearchBackend, build_query
from src.validations.predicates import contains_query, parse_query


class ElasticsearchBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.requests = []

    def _backend(self, status: int = 200, body=None) -> ElasticsearchBackend:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if isinstance(body, (dict, list)):
                return httpx.Response(status, json=body)
            return httpx.Response(status, text=body or "")

        options = BackendOptions(url="https://es.local:9200/", username="elastic", password="changeme")
        return ElasticsearchBackend(options, transport=httpx.MockTransport(handler))

    def test_count_query(self) -> None:
        backend = self._backend(body={"count": 3})
        self.assertTrue(backend.has_match("*beat*", parse_query("event.dataset:flow")))
        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/*beat*/_count")
        self.assertEqual(request.url.params["ignore_unavailable"], "true")
        self.assertTrue(request.headers["authorization"].startswith("Basic "))
        payload = json.loads(request.content)
        self.assertEqual(payload, {"query": {"bool": {"filter": [{"term": {"event.dataset": "flow"}}]}}})

    def test_zero_count_is_no_match(self) -> None:
        self.assertFalse(self._backend(body={"count": 0}).has_match("*beat*", parse_query("a:b")))

    def test_errors_become_backend_errors(self) -> None:
        for status, body in [(503, "unavailable"), (200, "not json"), (200, {"hits": []})]:
            with self.subTest(status=status, body=body):
                with self.assertRaises(BackendError):
                    self._backend(status, body).has_match("*beat*", parse_query("a:b"))

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        backend = ElasticsearchBackend(BackendOptions(url="http://es:9200"), transport=httpx.MockTransport(handler))
        with self.assertRaises(BackendError):
            backend.has_match("*beat*", parse_query("a:b"))

    def test_build_query_contains(self) -> None:
        query = build_query(contains_query("message", "marker 42"))
        self.assertEqual(query, {"bool": {"filter": [{"match_phrase": {"message": "marker 42"}}]}})

    def test_invalid_url(self) -> None:
        with self.assertRaises(ValueError):
            ElasticsearchBackend(BackendOptions(url="es:9200"))

    def test_from_env(self) -> None:
        env = {
            "E2E_ES_URL": "https://es.e2e:9200",
            "E2E_ES_USERNAME": "elastic",
            "E2E_ES_PASSWORD": "secret",
            "E2E_ES_INSECURE": "true",
        }
        with mock.patch.dict("os.environ", env, clear=True):
            backend = ElasticsearchBackend.from_env()
        self.assertEqual(backend.url, "https://es.e2e:9200")
        self.assertEqual(backend.auth, ("elastic", "secret"))
        self.assertFalse(backend.verify)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
