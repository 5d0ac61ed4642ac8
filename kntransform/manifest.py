"""Manifests of Kubernetes resources, predicates and deployment readiness checks."""

from __future__ import annotations

import copy
import urllib.request
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import yaml

from .component import Component

Predicate = Callable[[dict], bool]
Transformer = Callable[[dict], None]

_MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")


def _metadata(resource: dict) -> dict:
    return resource.get("metadata") or {}


def _key(resource: dict) -> tuple[str, str, str]:
    meta = _metadata(resource)
    return (resource.get("kind", ""), meta.get("namespace", ""), meta.get("name", ""))


class ResourceNotFoundError(LookupError):
    """Raised when a resource does not exist in the cluster."""

    def __init__(self, resource: dict):
        kind, namespace, name = _key(resource)
        self.kind = kind
        self.namespace = namespace
        self.name = name
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} not found")


class ManifestClient(ABC):
    """Access to the cluster holding the resources of a manifest."""

    @abstractmethod
    def get(self, resource: dict) -> dict:
        """Return the live resource; raise ResourceNotFoundError if absent."""

    @abstractmethod
    def create(self, resource: dict) -> None:
        """Create the resource."""

    @abstractmethod
    def update(self, resource: dict) -> None:
        """Update the resource."""

    @abstractmethod
    def delete(self, resource: dict) -> None:
        """Delete the resource; raise ResourceNotFoundError if absent."""


class InMemoryClient(ManifestClient):
    """A client keeping resources in memory, keyed by kind, namespace and name."""

    def __init__(self, *resources: dict):
        self._objects: dict[tuple[str, str, str], dict] = {
            _key(r): copy.deepcopy(r) for r in resources
        }

    def get(self, resource: dict) -> dict:
        try:
            return copy.deepcopy(self._objects[_key(resource)])
        except KeyError:
            raise ResourceNotFoundError(resource) from None

    def create(self, resource: dict) -> None:
        self._objects[_key(resource)] = copy.deepcopy(resource)

    def update(self, resource: dict) -> None:
        self._objects[_key(resource)] = copy.deepcopy(resource)

    def delete(self, resource: dict) -> None:
        if self._objects.pop(_key(resource), None) is None:
            raise ResourceNotFoundError(resource)


class Manifest:
    """An ordered collection of resources, optionally bound to a client."""

    def __init__(self, resources: Iterable[dict] = (), client: Optional[ManifestClient] = None):
        self._resources = [copy.deepcopy(r) for r in resources]
        self.client = client

    @property
    def resources(self) -> list[dict]:
        """Copies of the resources in order."""
        return [copy.deepcopy(r) for r in self._resources]

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[dict]:
        return iter(self.resources)

    def _require_client(self) -> ManifestClient:
        if self.client is None:
            raise RuntimeError("manifest has no client")
        return self.client

    def filter(self, *predicates: Predicate) -> "Manifest":
        """Return the resources matching every predicate."""
        kept = [r for r in self._resources if all(p(r) for p in predicates)]
        return Manifest(kept, self.client)

    def transform(self, *transformers: Optional[Transformer]) -> "Manifest":
        """Return a manifest of copies with each transformer applied in turn."""
        resources = self.resources
        for resource in resources:
            for transformer in transformers:
                if transformer is not None:
                    transformer(resource)
        return Manifest(resources, self.client)

    def append(self, other: "Manifest") -> "Manifest":
        """Return a manifest holding these resources followed by the other's."""
        return Manifest([*self._resources, *other._resources], self.client)

    def apply(self) -> None:
        """Create the missing resources and update the existing ones, in order."""
        client = self._require_client()
        for resource in self._resources:
            try:
                client.get(resource)
            except ResourceNotFoundError:
                client.create(copy.deepcopy(resource))
                continue
            client.update(copy.deepcopy(resource))

    def delete(self, ignore_not_found: bool = True) -> None:
        """Delete the existing resources in reverse order."""
        client = self._require_client()
        for resource in reversed(self._resources):
            try:
                client.get(resource)
            except ResourceNotFoundError:
                continue
            try:
                client.delete(copy.deepcopy(resource))
            except ResourceNotFoundError:
                if not ignore_not_found:
                    raise


def _parse_documents(text: str, source: str) -> list[dict]:
    resources = []
    for document in yaml.safe_load_all(text):
        if not document:
            continue
        if not isinstance(document, dict):
            raise ValueError(f"{source}: a resource must be a mapping")
        resources.append(document)
    return resources


def _files_of(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(p for p in path.iterdir() if p.is_file() and p.suffix in _MANIFEST_SUFFIXES)
    if path.is_file():
        return [path]
    raise FileNotFoundError(f"no manifest at {path}")


def load_manifest(path: str, client: Optional[ManifestClient] = None) -> Manifest:
    """Read resources from comma-separated files, directories or http(s) URLs."""
    if not path:
        raise FileNotFoundError("no manifest path given")
    resources: list[dict] = []
    for part in (p.strip() for p in path.split(",")):
        if not part:
            continue
        if part.startswith(("http://", "https://")):
            with urllib.request.urlopen(part) as response:
                text = response.read().decode("utf-8")
            resources.extend(_parse_documents(text, part))
            continue
        for file in _files_of(Path(part)):
            resources.extend(_parse_documents(file.read_text(encoding="utf-8"), str(file)))
    return Manifest(resources, client)


def by_kind(kind: str) -> Predicate:
    """Match resources of the given kind."""
    return lambda resource: resource.get("kind") == kind


def any_of(*predicates: Predicate) -> Predicate:
    """Match resources matching at least one predicate."""
    return lambda resource: any(p(resource) for p in predicates)


def not_(predicate: Predicate) -> Predicate:
    """Match resources the predicate rejects."""
    return lambda resource: not predicate(resource)


def no_crds(resource: dict) -> bool:
    """Reject CustomResourceDefinitions."""
    return resource.get("kind") != "CustomResourceDefinition"


def is_deployment_available(deployment: dict) -> bool:
    """Whether the deployment reports the Available condition as True."""
    conditions = (deployment.get("status") or {}).get("conditions") or []
    return any(c.get("type") == "Available" and c.get("status") == "True" for c in conditions)


def check_deployments(manifest: Manifest, component: Component) -> None:
    """Update the component status with the availability of the manifest's deployments."""
    status = component.status
    client = manifest._require_client()
    not_ready = []
    for deployment in manifest.filter(by_kind("Deployment")):
        try:
            current = client.get(deployment)
        except ResourceNotFoundError:
            status.mark_deployments_not_ready(["all"])
            return
        except Exception:
            status.mark_deployments_not_ready(["all"])
            raise
        if not is_deployment_available(current):
            not_ready.append(_metadata(current).get("name", ""))

    if not_ready:
        status.mark_deployments_not_ready(not_ready)
        return
    status.mark_deployments_available()