"""Naming and annotation of Jobs shipped with a component."""

from __future__ import annotations

from .component import Component, ComponentKind, Transformer
from .releases import target_version

ISTIO_ANNOTATION_NAME = "sidecar.istio.io/inject"


def _add_istio_ignore_annotation(job: dict) -> None:
    template = job.setdefault("spec", {}).setdefault("template", {})
    metadata = template.get("metadata")
    if metadata is None:
        metadata = template["metadata"] = {}
    annotations = metadata.get("annotations")
    if annotations is None:
        annotations = {}
    if not annotations.get(ISTIO_ANNOTATION_NAME):
        annotations[ISTIO_ANNOTATION_NAME] = "false"
        metadata["annotations"] = annotations


def job_transform(component: Component) -> Transformer:
    """Suffix Job names with the component and target version; disable sidecar injection."""

    def transform(resource: dict) -> None:
        if resource.get("kind") != "Job":
            return
        kind = "eventing" if component.kind is ComponentKind.EVENTING else "serving"
        version = target_version(component)
        metadata = resource.get("metadata")
        if metadata is None:
            metadata = resource["metadata"] = {}
        name = metadata.get("name") or ""
        if name:
            metadata["name"] = f"{name}-{kind}-{version}"
        else:
            metadata["name"] = f"{metadata.get('generateName') or ''}{kind}-{version}"
        _add_istio_ignore_annotation(resource)

    return transform