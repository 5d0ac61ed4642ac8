"""Container resource, environment and probe overrides."""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping, Optional, TypeVar

from .component import (
    Component,
    EnvRequirementsOverride,
    ProbesRequirementsOverride,
    Transformer,
)

_LOG = logging.getLogger(__name__)

_Override = TypeVar("_Override", EnvRequirementsOverride, ProbesRequirementsOverride)


def _pod_spec(resource: dict) -> Optional[dict]:
    current: Any = resource
    for key in ("spec", "template", "spec"):
        current = current.get(key)
        if current is None:
            return None
        if not isinstance(current, dict):
            raise TypeError(f"failed to convert Unstructured to Deployment: .{key} is not a map")
    return current


def _merge_quantities(resources: dict, key: str, src: Mapping[str, str]) -> None:
    current = resources.get(key)
    if current:
        current.update(src)
    elif src:
        resources[key] = dict(src)


def resource_requirements_transform(
    component: Component, logger: Optional[logging.Logger] = None
) -> Transformer:
    """Merge spec.resources into the matching containers of every Deployment.

    Deployments with resources set in spec.deployments are left alone.
    """
    log = logger or _LOG

    def transform(resource: dict) -> None:
        if resource.get("kind") != "Deployment":
            return
        name = (resource.get("metadata") or {}).get("name") or ""
        for override in component.spec.workload_overrides:
            if override.name == name and override.resources:
                return

        pod_spec = _pod_spec(resource)
        if pod_spec is None:
            return
        for container in pod_spec.get("containers") or []:
            container_name = container.get("name") or ""
            override = next(
                (o for o in component.spec.resources if o.container == container_name), None
            )
            if override is None:
                continue
            log.debug("Overriding resources of %s/%s", name, container_name)
            requirements = container.setdefault("resources", {})
            _merge_quantities(requirements, "limits", override.limits)
            _merge_quantities(requirements, "requests", override.requests)

    return transform


def merge_env(src: Iterable[dict], tgt: Iterable[dict]) -> list[dict]:
    """Return tgt with every variable of src replacing same-named ones or appended."""
    merged = list(tgt)
    if not merged:
        return list(src)
    for variable in src:
        name = variable.get("name")
        if any(existing.get("name") == name for existing in merged):
            merged = [variable if existing.get("name") == name else existing for existing in merged]
        else:
            merged.append(variable)
    return merged


def find_env_override(
    overrides: Iterable[EnvRequirementsOverride], name: str
) -> Optional[EnvRequirementsOverride]:
    """Return the first override for the named container, or None."""
    return next((o for o in overrides if o.container == name), None)


def _deep_merge(base: dict, override: Mapping[str, Any]) -> dict:
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            base[key] = _deep_merge(current, value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def merge_probe(override: Optional[Mapping[str, Any]], target: Mapping[str, Any]) -> dict:
    """Return the target probe with the fields set in the override laid over it."""
    merged = copy.deepcopy(dict(target))
    if override is None:
        return merged
    return _deep_merge(merged, override)


def find_probe_override(
    overrides: Iterable[ProbesRequirementsOverride], name: str
) -> Optional[ProbesRequirementsOverride]:
    """Return the first probe override for the named container, or None."""
    return next((o for o in overrides if o.container == name), None)