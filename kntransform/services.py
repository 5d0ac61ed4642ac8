"""Overrides for Services and PodDisruptionBudgets from the operator custom resource."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .component import Component, Transformer

_LOG = logging.getLogger(__name__)


def _child_map(parent: dict, key: str, kind: str) -> dict:
    value = parent.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"failed to convert Unstructured to {kind}: .{key} is not a map")
    return value


def _merge_into(parent: dict, key: str, values: Mapping[str, str], kind: str) -> None:
    merged = {**_child_map(parent, key, kind), **values}
    if merged:
        parent[key] = merged
    else:
        parent.pop(key, None)


def _name(resource: dict) -> str:
    metadata = resource.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return metadata.get("name") or ""


def _drop_creation_timestamp(resource: dict) -> None:
    metadata = resource.get("metadata")
    if isinstance(metadata, dict):
        metadata.pop("creationTimestamp", None)


def services_transform(
    component: Component, logger: Optional[logging.Logger] = None
) -> Optional[Transformer]:
    """Merge labels, annotations and selectors from spec.services into matching Services.

    Returns None when the component defines no service overrides.
    """
    overrides = component.spec.service_overrides
    if overrides is None:
        return None
    log = logger or _LOG

    def transform(resource: dict) -> None:
        for override in overrides:
            if resource.get("kind") != "Service" or _name(resource) != override.name:
                continue
            log.debug("Overriding Service %s", override.name)
            metadata = _child_map(resource, "metadata", "Service")
            resource["metadata"] = metadata
            _merge_into(metadata, "labels", override.labels, "Service")
            _merge_into(metadata, "annotations", override.annotations, "Service")
            spec = _child_map(resource, "spec", "Service")
            _merge_into(spec, "selector", override.selector, "Service")
            if spec:
                resource["spec"] = spec
            _drop_creation_timestamp(resource)

    return transform


def pod_disruption_budgets_transform(
    component: Component, logger: Optional[logging.Logger] = None
) -> Optional[Transformer]:
    """Set minAvailable of PodDisruptionBudgets named in spec.podDisruptionBudgets.

    Returns None when the component defines no such overrides. A matching
    override without minAvailable stops further processing of the resource.
    """
    overrides = component.spec.pod_disruption_budget_overrides
    if overrides is None:
        return None
    log = logger or _LOG

    def transform(resource: dict) -> None:
        for override in overrides:
            if resource.get("kind") != "PodDisruptionBudget" or _name(resource) != override.name:
                continue
            if override.min_available is None:
                return
            log.debug("Overriding PodDisruptionBudget %s", override.name)
            spec = _child_map(resource, "spec", "PodDisruptionBudget")
            spec["minAvailable"] = override.min_available
            resource["spec"] = spec
            _drop_creation_timestamp(resource)

    return transform