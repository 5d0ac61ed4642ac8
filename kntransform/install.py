"""Ordered installation and removal of a component's manifest."""

from __future__ import annotations

from .component import Component, ComponentKind
from .manifest import Manifest, any_of, by_kind, no_crds, not_
from .releases import target_version

_ROLE = any_of(by_kind("ClusterRole"), by_kind("Role"))
_ROLE_BINDING = any_of(by_kind("ClusterRoleBinding"), by_kind("RoleBinding"))
_WEBHOOK = any_of(
    by_kind("MutatingWebhookConfiguration"),
    by_kind("ValidatingWebhookConfiguration"),
)
_GATEWAY_NOT_MATCH = 'no matches for kind "Gateway"'


class InstallError(RuntimeError):
    """Raised when applying or deleting a manifest fails."""


def _istio_expected(component: Component) -> bool:
    if component.kind is not ComponentKind.SERVING:
        return False
    ingress = component.spec.ingress
    return ingress is None or ingress.istio_enabled


def install(manifest: Manifest, component: Component) -> None:
    """Apply the manifest in the order roles, bindings, the rest, webhooks.

    Binding roles that do not exist yet would need extra permissions, hence the
    strict ordering. The component status records the outcome.
    """
    status = component.status

    try:
        manifest.filter(_ROLE).apply()
    except Exception as err:
        status.mark_install_failed(str(err))
        raise InstallError(f"failed to apply (cluster)roles: {err}") from err

    try:
        manifest.filter(_ROLE_BINDING).apply()
    except Exception as err:
        status.mark_install_failed(str(err))
        raise InstallError(f"failed to apply (cluster)rolebindings: {err}") from err

    try:
        manifest.filter(not_(any_of(_ROLE, _ROLE_BINDING, _WEBHOOK))).apply()
    except Exception as err:
        status.mark_install_failed(str(err))
        if _GATEWAY_NOT_MATCH in str(err) and _istio_expected(component):
            message = f"please install istio or disable the istio ingress plugin: {err}"
            status.mark_install_failed(message)
            raise InstallError(message) from err
        raise InstallError(f"failed to apply non rbac manifest: {err}") from err

    try:
        manifest.filter(_WEBHOOK).apply()
    except Exception as err:
        status.mark_install_failed(str(err))
        raise InstallError(f"failed to apply webhooks: {err}") from err

    status.mark_install_succeeded()
    status.version = target_version(component)


def uninstall(manifest: Manifest) -> None:
    """Delete every resource except CRDs, leaving RBAC resources for last."""
    try:
        manifest.filter(no_crds, not_(any_of(_ROLE, _ROLE_BINDING))).delete(ignore_not_found=True)
    except Exception as err:
        raise InstallError(f"failed to remove non-crd/non-rbac resources: {err}") from err
    try:
        manifest.filter(any_of(_ROLE, _ROLE_BINDING)).delete(ignore_not_found=True)
    except Exception as err:
        raise InstallError(f"failed to remove rbac: {err}") from err