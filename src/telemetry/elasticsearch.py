from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from src.validations.predicates import Query, Term
from .backend import BackendError


@dataclass
class BackendOptions:
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_seconds: float = 10.0
    verify: Union[bool, str] = True


class ElasticsearchBackend:
    """Read-only Elasticsearch oracle answering "does any record match?"."""

    def __init__(self, options: BackendOptions, *, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.url = self._normalise_url(options.url)
        self.auth = (options.username, options.password or "") if options.username else None
        self.timeout = options.timeout_seconds
        self.verify = options.verify
        self.transport = transport

    def has_match(self, index: str, query: Query) -> bool:
        payload = {"query": build_query(query)}
        try:
            with httpx.Client(
                timeout=self.timeout, auth=self.auth, verify=self.verify, transport=self.transport
            ) as client:
                response = client.post(
                    f"{self.url}/{index}/_count",
                    params={"ignore_unavailable": "true", "allow_no_indices": "true"},
                    json=payload,
                )
                response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"Elasticsearch returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(f"Elasticsearch query failed: {exc}") from exc
        count = data.get("count") if isinstance(data, dict) else None
        if not isinstance(count, int):
            raise BackendError("Elasticsearch response missing 'count'")
        return count > 0

    @staticmethod
    def _normalise_url(url: str) -> str:
        if not url:
            raise ValueError("Elasticsearch URL is required")
        if not url.startswith("http"):
            raise ValueError("Elasticsearch URL must start with http or https")
        return url.rstrip("/")

    @classmethod
    def from_env(
        cls,
        url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ) -> "ElasticsearchBackend":
        insecure = os.getenv("E2E_ES_INSECURE", "").lower() in {"1", "true", "yes"}
        ca_path = os.getenv("E2E_ES_CA")
        verify: Union[bool, str] = ca_path or not insecure
        options = BackendOptions(
            url=url or os.getenv("E2E_ES_URL", "http://localhost:9200"),
            username=username or os.getenv("E2E_ES_USERNAME"),
            password=password or os.getenv("E2E_ES_PASSWORD"),
            timeout_seconds=timeout_seconds,
            verify=verify,
        )
        return cls(options)


def build_query(query: Query) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = [_term_clause(term) for term in query.terms]
    return {"bool": {"filter": clauses}}


def _term_clause(term: Term) -> Dict[str, Any]:
    if term.contains:
        return {"match_phrase": {term.field: str(term.value)}}
    return {"term": {term.field: term.value}}


__all__ = ["BackendOptions", "ElasticsearchBackend", "build_query"]
