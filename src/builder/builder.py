from __future__ import annotations

import dataclasses
import functools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

import jsonpatch

from src.common.errors import LoadError
from src.common.resources import Resource, collect_pod_specs
from src.common.naming import scoped_name
from src.validations.predicates import Validation

RBAC_API_VERSION = "rbac.authorization.k8s.io/v1"


@dataclass(frozen=True)
class Builder:
    """Configuration value for one recipe case.

    Every ``with_*`` method returns a new Builder; nothing here talks to the
    cluster. The suffix is fixed when the recipe is loaded.
    """

    primary: Resource
    suffix: str
    auxiliary: Tuple[Resource, ...] = ()
    additional_objects: Tuple[Resource, ...] = ()
    roles: Tuple[str, ...] = ()
    validations: Tuple[Validation, ...] = ()

    def with_roles(self, *names: str) -> "Builder":
        roles = list(self.roles)
        for name in names:
            if name not in roles:
                roles.append(name)
        return dataclasses.replace(self, roles=tuple(roles))

    def with_validations(self, *validations: Validation) -> "Builder":
        return dataclasses.replace(self, validations=self.validations + tuple(validations))

    def with_additional_objects(self, *resources: Resource) -> "Builder":
        return dataclasses.replace(self, additional_objects=self.additional_objects + tuple(resources))

    def with_primary(self, resource: Resource) -> "Builder":
        return dataclasses.replace(self, primary=resource)

    def edit_primary(self, edit: Callable[[Dict[str, Any]], None]) -> "Builder":
        """Run ``edit`` against a private copy of the primary manifest."""

        manifest = self.primary.to_dict()
        edit(manifest)
        return self.with_primary(Resource(manifest))

    def with_json_patch(self, patch_ops: List[Dict[str, Any]]) -> "Builder":
        try:
            patched = jsonpatch.apply_patch(self.primary.to_dict(), patch_ops, in_place=False)
        except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as exc:
            raise LoadError(f"patch does not apply to {self.primary.ref}: {exc}") from exc
        return self.with_primary(Resource(patched))

    @property
    def service_account_name(self) -> str:
        return scoped_name(f"{self.primary.kind.lower()}-e2e", self.suffix)

    def access_objects(self) -> List[Resource]:
        if not self.roles:
            return []
        namespace = self.primary.namespace
        objects = [
            Resource(
                {
                    "apiVersion": "v1",
                    "kind": "ServiceAccount",
                    "metadata": {"name": self.service_account_name, "namespace": namespace},
                }
            )
        ]
        for role in self.roles:
            objects.append(
                Resource(
                    {
                        "apiVersion": RBAC_API_VERSION,
                        "kind": "ClusterRoleBinding",
                        "metadata": {"name": scoped_name(f"{role}-{self.primary.kind.lower()}", self.suffix)},
                        "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": role},
                        "subjects": [
                            {"kind": "ServiceAccount", "name": self.service_account_name, "namespace": namespace}
                        ],
                    }
                )
            )
        return objects

    @property
    def siblings(self) -> Tuple[Resource, ...]:
        """Auxiliary objects of the primary's kind, such as a second Beat in one recipe."""

        return tuple(resource for resource in self.auxiliary if resource.kind == self.primary.kind)

    def with_access(self, resource: Resource) -> Resource:
        if not self.roles:
            return resource
        manifest = resource.to_dict()
        for pod_spec in collect_pod_specs(manifest):
            pod_spec["serviceAccountName"] = self.service_account_name
            pod_spec.setdefault("automountServiceAccountToken", True)
        return Resource(manifest)

    def primary_with_access(self) -> Resource:
        return self.with_access(self.primary)

    def workloads(self) -> List[Resource]:
        """Siblings then the primary, each wired to the case's service account."""

        return [*(self.with_access(sibling) for sibling in self.siblings), self.primary_with_access()]

    def objects_to_apply(self) -> List[Resource]:
        """Dependents first, workloads last with the primary at the very end."""

        dependents = [resource for resource in self.auxiliary if resource.kind != self.primary.kind]
        return [
            *dependents,
            *self.additional_objects,
            *self.access_objects(),
            *self.workloads(),
        ]


Customization = Callable[[Builder], Builder]


def apply_customizations(builder: Builder, customizations: Iterable[Customization]) -> Builder:
    return functools.reduce(lambda acc, customize: customize(acc), customizations, builder)


def chain(*customizations: Customization) -> Customization:
    steps: Sequence[Customization] = tuple(customizations)
    return lambda builder: apply_customizations(builder, steps)


__all__ = [
    "Builder",
    "Customization",
    "apply_customizations",
    "chain",
]
