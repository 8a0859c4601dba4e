"""Cluster object application through kubectl."""

from .kubectl import ClusterClient, KubectlClient, KubectlError

__all__ = ["ClusterClient", "KubectlClient", "KubectlError"]
