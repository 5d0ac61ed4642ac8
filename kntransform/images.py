"""Rewriting container images, env-var images and pull secrets from registry settings."""

from __future__ import annotations

import logging
from typing import Optional

from .component import Registry, Transformer

CACHING_API_VERSION = "caching.internal.knative.dev/v1alpha1"
CONTAINER_NAME_VARIABLE = "${NAME}"

_DELIMITER = "/"
_POD_SPEC_KINDS = frozenset({"Deployment", "DaemonSet", "StatefulSet", "Job"})
_LOG = logging.getLogger(__name__)


def _child_map(parent: dict, key: str, kind: str, create: bool) -> Optional[dict]:
    value = parent.get(key)
    if value is None:
        if not create:
            return None
        value = parent[key] = {}
    elif not isinstance(value, dict):
        raise TypeError(f"failed to convert Unstructured to {kind}: .{key} is not a map")
    return value


def _pod_spec(resource: dict, kind: str, create: bool) -> Optional[dict]:
    current: Optional[dict] = resource
    for key in ("spec", "template", "spec"):
        current = _child_map(current, key, kind, create)
        if current is None:
            return None
    return current


def _metadata(resource: dict, kind: str) -> dict:
    metadata = resource.get("metadata")
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise TypeError(f"failed to convert Unstructured to {kind}: .metadata is not a map")
    return metadata


def _default_image(registry: Registry, current_image: str, fallback_name: str) -> str:
    image_name = get_image_name(current_image) or fallback_name
    return registry.default.replace(CONTAINER_NAME_VARIABLE, image_name)


def _with_pull_secrets(existing: Optional[list], registry: Registry) -> list:
    return [*(existing or []), *(dict(secret) for secret in registry.image_pull_secrets)]


def _update_caching_image(registry: Registry, resource: dict, log: logging.Logger) -> None:
    name = _metadata(resource, "Image").get("name") or ""
    log.debug("Updating Image name=%s registry=%s", name, registry)
    spec = _child_map(resource, "spec", "Image", create=True)

    if name in registry.override:
        spec["image"] = registry.override[name]
    elif registry.default:
        spec["image"] = _default_image(registry, spec.get("image") or "", name)

    if registry.image_pull_secrets:
        log.debug("Adding ImagePullSecrets: %s", registry.image_pull_secrets)
        spec["imagePullSecrets"] = _with_pull_secrets(spec.get("imagePullSecrets"), registry)

    resource.pop("status", None)
    log.debug("Finished conversion name=%s resource=%s", name, resource)


def image_transform(registry: Registry, logger: Optional[logging.Logger] = None) -> Transformer:
    """Replace images of pod-bearing workloads and caching Images with registry settings.

    Lookup order for a container is "<workload>/<container>", then "<container>",
    then the default pattern with ${NAME} replaced by the image or container name.
    """
    log = logger or _LOG

    def transform(resource: dict) -> None:
        kind = resource.get("kind")
        if kind == "Image" and resource.get("apiVersion") == CACHING_API_VERSION:
            _update_caching_image(registry, resource, log)
            return
        if kind not in _POD_SPEC_KINDS:
            return

        metadata = _metadata(resource, kind)
        obj_name = metadata.get("generateName") or metadata.get("name") or ""
        log.debug("Updating name=%s registry=%s", obj_name, registry)

        pod_spec = _pod_spec(resource, kind, create=bool(registry.image_pull_secrets))
        if pod_spec is None:
            return

        containers = pod_spec.get("containers") or []
        if not isinstance(containers, list):
            raise TypeError(f"failed to convert Unstructured to {kind}: containers is not a list")
        for container in containers:
            name = container.get("name") or ""
            image = registry.override.get(obj_name + _DELIMITER + name)
            if image is None:
                image = registry.override.get(name)
            if image is not None:
                container["image"] = image
            elif registry.default:
                container["image"] = _default_image(registry, container.get("image") or "", name)

            for env in container.get("env") or []:
                env_name = env.get("name") or ""
                if env_name in registry.override:
                    env["value"] = registry.override[env_name]

        if registry.image_pull_secrets:
            log.debug("Adding ImagePullSecrets: %s", registry.image_pull_secrets)
            pod_spec["imagePullSecrets"] = _with_pull_secrets(
                pod_spec.get("imagePullSecrets"), registry
            )

        log.debug("Finished conversion name=%s resource=%s", metadata.get("name"), resource)

    return transform


def get_image_name(full_image_url: str) -> str:
    """Return the bare image name of a reference, or '' if it has no repository path."""
    if "/" not in full_image_url:
        return ""
    name_with_tag = full_image_url.split("/")[-1]
    if ":" not in name_with_tag:
        return name_with_tag
    image_name = name_with_tag.split(":")[0]
    if "@" not in image_name:
        return image_name
    return name_with_tag.split("@")[0]