"""Replica handling for HorizontalPodAutoscalers and highly available deployments."""

from __future__ import annotations

from typing import Any

from .component import Component, Transformer

_HPA_WORKLOADS = frozenset(
    {
        "webhook",
        "activator",
        "3scale-kourier-gateway",
        "eventing-webhook",
        "mt-broker-ingress",
        "mt-broker-filter",
    }
)

_HPA_NAME_OVERRIDES = {
    "mt-broker-ingress": "broker-ingress-hpa",
    "mt-broker-filter": "broker-filter-hpa",
}

_HA_UNSUPPORTED = frozenset({"pingsource-mt-adapter"})


def _nested(obj: dict, *path: str) -> tuple[Any, bool]:
    current: Any = obj
    for depth, key in enumerate(path):
        if not isinstance(current, dict):
            where = ".".join(path[:depth])
            raise TypeError(f".{where} accessor error: {current!r} is not a map")
        if key not in current:
            return None, False
        current = current[key]
    return current, True


def _nested_int(obj: dict, *path: str) -> tuple[int, bool]:
    value, found = _nested(obj, *path)
    if not found:
        return 0, False
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f".{'.'.join(path)} accessor error: {value!r} is not an integer")
    return value, True


def _set_nested(obj: dict, value: Any, *path: str) -> None:
    current = obj
    for depth, key in enumerate(path[:-1]):
        child = current.get(key)
        if child is None:
            child = current[key] = {}
        elif not isinstance(child, dict):
            where = ".".join(path[: depth + 1])
            raise TypeError(f"value cannot be set because .{where} is not a map")
        current = child
    current[path[-1]] = value


def has_horizontal_pod_autoscaler(name: str) -> bool:
    """Whether the workload's replicas are governed by an HPA rather than the operator."""
    return name in _HPA_WORKLOADS


def get_hpa_name(name: str) -> str:
    """Return the name of the HPA belonging to the workload."""
    return _HPA_NAME_OVERRIDES.get(name, name)


def hpa_transform(resource: dict, replicas: int) -> None:
    """Raise an HPA's minReplicas to the given value, raising maxReplicas by as much.

    Nothing changes when the HPA already ships with at least that many replicas.
    """
    if resource.get("kind") != "HorizontalPodAutoscaler":
        return
    minimum, _ = _nested_int(resource, "spec", "minReplicas")
    if minimum >= replicas:
        return
    _set_nested(resource, replicas, "spec", "minReplicas")
    maximum, found = _nested_int(resource, "spec", "maxReplicas")
    if not found:
        return
    _set_nested(resource, maximum + (replicas - minimum), "spec", "maxReplicas")


def high_availability_transform(component: Component) -> Transformer:
    """Apply spec.highAvailability replicas to deployments and HPAs."""

    def transform(resource: dict) -> None:
        name = (resource.get("metadata") or {}).get("name") or ""
        for override in component.spec.workload_overrides:
            if override.replicas is not None and override.name == name:
                return

        ha = component.spec.high_availability
        if ha is None or ha.replicas is None:
            return
        replicas = int(ha.replicas)

        kind = resource.get("kind")
        if (
            kind == "Deployment"
            and name not in _HA_UNSUPPORTED
            and not has_horizontal_pod_autoscaler(name)
        ):
            _set_nested(resource, replicas, "spec", "replicas")

        if kind == "HorizontalPodAutoscaler":
            hpa_transform(resource, replicas)

    return transform