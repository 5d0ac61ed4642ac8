"""Operator custom resource model, component extensions and finalizer patches."""

from __future__ import annotations

import enum
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

if TYPE_CHECKING:
    from .manifest import Manifest

Transformer = Callable[[dict], None]

DEPLOYMENTS_AVAILABLE = "DeploymentsAvailable"
INSTALL_SUCCEEDED = "InstallSucceeded"
READY = "Ready"

STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

_DEPENDENT_CONDITIONS = (INSTALL_SUCCEEDED, DEPLOYMENTS_AVAILABLE)


class ComponentKind(enum.Enum):
    """The kinds of operator custom resources."""

    SERVING = "KnativeServing"
    EVENTING = "KnativeEventing"


@dataclass
class Registry:
    """Image registry settings: a default pattern, per-name overrides and pull secrets."""

    default: str = ""
    override: dict[str, str] = field(default_factory=dict)
    image_pull_secrets: list[dict[str, str]] = field(default_factory=list)


@dataclass
class HighAvailability:
    """Control-plane replica count for highly available deployments."""

    replicas: Optional[int] = None


@dataclass
class ResourceRequirementsOverride:
    """Resource limits and requests for one container."""

    container: str
    limits: dict[str, str] = field(default_factory=dict)
    requests: dict[str, str] = field(default_factory=dict)


@dataclass
class EnvRequirementsOverride:
    """Environment variables for one container."""

    container: str
    env_vars: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ProbesRequirementsOverride:
    """Probe settings for one container."""

    container: str
    probe: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkloadOverride:
    """Per-workload overrides taking precedence over component-wide settings."""

    name: str
    replicas: Optional[int] = None
    resources: list[ResourceRequirementsOverride] = field(default_factory=list)
    env: list[EnvRequirementsOverride] = field(default_factory=list)
    readiness_probes: list[ProbesRequirementsOverride] = field(default_factory=list)
    liveness_probes: list[ProbesRequirementsOverride] = field(default_factory=list)


@dataclass
class ServiceOverride:
    """Labels, annotations and selector merged into a named Service."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    selector: dict[str, str] = field(default_factory=dict)


@dataclass
class PodDisruptionBudgetOverride:
    """The minAvailable value for a named PodDisruptionBudget."""

    name: str
    min_available: Union[int, str, None] = None


@dataclass
class ManifestRef:
    """A manifest location; may contain the ${VERSION} placeholder."""

    url: str


@dataclass
class IngressSpec:
    """Ingress plugin settings."""

    istio_enabled: bool = False


@dataclass
class ComponentSpec:
    """The desired state of an operator custom resource."""

    version: str = ""
    manifests: list[ManifestRef] = field(default_factory=list)
    additional_manifests: list[ManifestRef] = field(default_factory=list)
    registry: Registry = field(default_factory=Registry)
    high_availability: Optional[HighAvailability] = None
    workload_overrides: list[WorkloadOverride] = field(default_factory=list)
    resources: list[ResourceRequirementsOverride] = field(default_factory=list)
    config: dict[str, dict[str, str]] = field(default_factory=dict)
    service_overrides: Optional[list[ServiceOverride]] = None
    pod_disruption_budget_overrides: Optional[list[PodDisruptionBudgetOverride]] = None
    ingress: Optional[IngressSpec] = None


@dataclass
class Condition:
    """A status condition."""

    type: str
    status: str = STATUS_UNKNOWN
    reason: str = ""
    message: str = ""


@dataclass
class ComponentStatus:
    """The observed state of an operator custom resource."""

    version: str = ""
    manifests: list[str] = field(default_factory=list)
    conditions: dict[str, Condition] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for condition_type in (*_DEPENDENT_CONDITIONS, READY):
            self.conditions.setdefault(condition_type, Condition(condition_type))

    def _set(self, condition_type: str, status: str, reason: str = "", message: str = "") -> None:
        self.conditions[condition_type] = Condition(condition_type, status, reason, message)
        self._update_ready()

    def _update_ready(self) -> None:
        dependents = [self.conditions[t] for t in _DEPENDENT_CONDITIONS]
        failed = next((c for c in dependents if c.status == STATUS_FALSE), None)
        if failed is not None:
            self.conditions[READY] = Condition(READY, STATUS_FALSE, failed.reason, failed.message)
        elif all(c.status == STATUS_TRUE for c in dependents):
            self.conditions[READY] = Condition(READY, STATUS_TRUE)
        else:
            self.conditions[READY] = Condition(READY, STATUS_UNKNOWN)

    def mark_deployments_not_ready(self, deployments: list[str]) -> None:
        """Mark the deployments as not yet available."""
        self._set(
            DEPLOYMENTS_AVAILABLE,
            STATUS_FALSE,
            "NotReady",
            "Waiting on deployments: " + ", ".join(deployments),
        )

    def mark_deployments_available(self) -> None:
        """Mark all deployments as available."""
        self._set(DEPLOYMENTS_AVAILABLE, STATUS_TRUE)

    def mark_install_failed(self, message: str) -> None:
        """Mark the installation as failed with the given message."""
        self._set(INSTALL_SUCCEEDED, STATUS_FALSE, "Error", f"Install failed with message: {message}")

    def mark_install_succeeded(self) -> None:
        """Mark the installation as successful."""
        self._set(INSTALL_SUCCEEDED, STATUS_TRUE)

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        """Return the condition of the given type, or None."""
        return self.conditions.get(condition_type)


@dataclass
class Component:
    """An operator custom resource: KnativeServing or KnativeEventing."""

    kind: ComponentKind
    name: str = ""
    resource_version: str = ""
    finalizers: list[str] = field(default_factory=list)
    spec: ComponentSpec = field(default_factory=ComponentSpec)
    status: ComponentStatus = field(default_factory=ComponentStatus)


def _require_component(component: Any) -> None:
    """Raise TypeError unless the argument is a Component or None."""
    if component is not None and not isinstance(component, Component):
        raise TypeError(f"expected a Component or None, got {type(component).__name__}")


class Extension(ABC):
    """Platform-specific additions to the reconciliation of a component."""

    @abstractmethod
    def manifests(self, component: Optional[Component]) -> list["Manifest"]:
        """Return extra manifests to install."""

    @abstractmethod
    def transformers(self, component: Optional[Component]) -> list[Transformer]:
        """Return extra transformers to apply to the manifests."""

    @abstractmethod
    def reconcile(self, component: Optional[Component]) -> None:
        """Perform extra reconciliation; raise on failure."""

    @abstractmethod
    def finalize(self, component: Optional[Component]) -> None:
        """Perform extra clean-up on deletion; raise on failure."""


class NilExtension(Extension):
    """An extension that adds nothing; it only checks what it is given."""

    def manifests(self, component: Optional[Component]) -> list["Manifest"]:
        """Return no extra manifests."""
        _require_component(component)
        return []

    def transformers(self, component: Optional[Component]) -> list[Transformer]:
        """Return no extra transformers."""
        _require_component(component)
        return []

    def reconcile(self, component: Optional[Component]) -> None:
        """Accept any component without further reconciliation."""
        _require_component(component)

    def finalize(self, component: Optional[Component]) -> None:
        """Accept any component without further clean-up."""
        _require_component(component)


def no_extension(*args: Any) -> Extension:
    """Generate an extension that adds nothing, whatever the arguments."""
    return NilExtension()


def finalizer_removal_patch(component: Component, to_remove: str) -> Optional[bytes]:
    """Build a JSON merge patch removing the finalizer, or None if it is absent."""
    finalizers = set(component.finalizers)
    if to_remove not in finalizers:
        return None
    finalizers.discard(to_remove)
    patch = {
        "metadata": {
            "finalizers": sorted(finalizers),
            "resourceVersion": component.resource_version,
        }
    }
    return json.dumps(patch, separators=(",", ":"), sort_keys=True).encode("utf-8")