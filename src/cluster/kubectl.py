from __future__ import annotations

import json
import logging
import math
import subprocess
from typing import Any, Dict, List, Optional, Protocol

from src.common.errors import ApplyError, TeardownError
from src.common.resources import Resource

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class KubectlError(Exception):
    """A read against the cluster failed; callers decide whether to retry."""


class ClusterClient(Protocol):
    def apply(self, resource: Resource, timeout: float) -> None:
        ...

    def delete(self, resource: Resource, timeout: float) -> None:
        ...

    def get(self, resource: Resource, timeout: float) -> Optional[Dict[str, Any]]:
        ...


def run_kubectl(
    kubectl: str,
    args: List[str],
    *,
    input_data: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    cmd = [kubectl] + args
    return subprocess.run(
        cmd,
        input=input_data.encode("utf-8") if input_data is not None else None,
        capture_output=True,
        check=False,
        timeout=timeout,
    )


def resource_type(resource: Resource) -> str:
    """``Beat`` in ``beat.k8s.elastic.co/v1beta1`` becomes ``beat.beat.k8s.elastic.co``."""

    group, _, _version = resource.api_version.rpartition("/")
    kind = resource.kind.lower()
    return f"{kind}.{group}" if group else kind


class KubectlClient:
    def __init__(self, kubectl_cmd: str = "kubectl", context: Optional[str] = None) -> None:
        self.kubectl_cmd = kubectl_cmd
        self.context = context

    def apply(self, resource: Resource, timeout: float = DEFAULT_TIMEOUT) -> None:
        args = self._base_args(timeout) + ["apply", "-f", "-"]
        try:
            proc = run_kubectl(self.kubectl_cmd, args, input_data=resource.to_yaml(), timeout=timeout)
        except FileNotFoundError as exc:
            raise ApplyError("kubectl executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise ApplyError(f"kubectl apply of {resource.ref} timed out after {timeout:.0f}s") from exc
        if proc.returncode != 0:
            raise ApplyError(f"kubectl apply of {resource.ref} failed: {_detail(proc)}")
        logger.debug("Applied %s", resource.ref)

    def delete(self, resource: Resource, timeout: float = DEFAULT_TIMEOUT) -> None:
        args = self._base_args(timeout) + ["delete", resource_type(resource), resource.name]
        args += self._namespace_args(resource)
        args += ["--ignore-not-found", "--wait=false"]
        try:
            proc = run_kubectl(self.kubectl_cmd, args, timeout=timeout)
        except FileNotFoundError as exc:
            raise TeardownError("kubectl executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise TeardownError(f"kubectl delete of {resource.ref} timed out after {timeout:.0f}s") from exc
        if proc.returncode != 0:
            detail = _detail(proc)
            if "NotFound" in detail or "not found" in detail:
                return
            raise TeardownError(f"kubectl delete of {resource.ref} failed: {detail}")
        logger.debug("Deleted %s", resource.ref)

    def get(self, resource: Resource, timeout: float = DEFAULT_TIMEOUT) -> Optional[Dict[str, Any]]:
        args = self._base_args(timeout) + ["get", resource_type(resource), resource.name]
        args += self._namespace_args(resource)
        args += ["-o", "json"]
        try:
            proc = run_kubectl(self.kubectl_cmd, args, timeout=timeout)
        except FileNotFoundError as exc:
            raise KubectlError("kubectl executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise KubectlError(f"kubectl get of {resource.ref} timed out") from exc
        if proc.returncode != 0:
            detail = _detail(proc)
            if "NotFound" in detail:
                return None
            raise KubectlError(detail)
        try:
            data = json.loads(proc.stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise KubectlError(f"kubectl get returned invalid JSON: {exc}") from exc
        return data if isinstance(data, dict) else None

    def _base_args(self, timeout: float) -> List[str]:
        args = [f"--request-timeout={max(1, int(math.ceil(timeout)))}s"]
        if self.context:
            args.append(f"--context={self.context}")
        return args

    @staticmethod
    def _namespace_args(resource: Resource) -> List[str]:
        if resource.cluster_scoped or not resource.namespace:
            return []
        return ["-n", resource.namespace]


def _detail(proc: subprocess.CompletedProcess) -> str:
    stderr = (proc.stderr or b"").decode("utf-8", errors="ignore").strip()
    stdout = (proc.stdout or b"").decode("utf-8", errors="ignore").strip()
    return stderr or stdout or f"exit code {proc.returncode}"


__all__ = ["ClusterClient", "KubectlClient", "KubectlError", "resource_type", "run_kubectl"]
