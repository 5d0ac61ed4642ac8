import copy

import pytest

from kntransform.component import (
    INSTALL_SUCCEEDED,
    STATUS_FALSE,
    STATUS_TRUE,
    Component,
    ComponentKind,
    ComponentSpec,
    ComponentStatus,
    IngressSpec,
)
from kntransform.install import InstallError, install, uninstall
from kntransform.manifest import ManifestClient, Manifest, ResourceNotFoundError


def namespaced(api_version, kind, namespace, name):
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"namespace": namespace, "name": name},
    }


def cluster_scoped(api_version, kind, name):
    return {"apiVersion": api_version, "kind": kind, "metadata": {"name": name}}


class FakeClient(ManifestClient):
    def __init__(self, err=None, resources_exist=False):
        self.err = err
        self.resources_exist = resources_exist
        self.creates = []
        self.deletes = []

    def get(self, resource):
        if self.err is not None:
            raise self.err
        if not self.resources_exist:
            raise ResourceNotFoundError(resource)
        return {}

    def create(self, resource):
        self.creates.append(copy.deepcopy(resource))
        if self.err is not None:
            raise self.err

    def update(self, resource):
        if self.err is not None:
            raise self.err

    def delete(self, resource):
        self.deletes.append(copy.deepcopy(resource))
        if self.err is not None:
            raise self.err


DEPLOYMENT = namespaced("apps/v1", "Deployment", "test", "test-deployment")
ROLE = namespaced("rbac.authorization.k8s.io/v1", "Role", "test", "test-role")
ROLE_BINDING = namespaced("rbac.authorization.k8s.io/v1", "RoleBinding", "test", "test-role-binding")
CLUSTER_ROLE = cluster_scoped("rbac.authorization.k8s.io/v1", "ClusterRole", "test-cluster-role")
CLUSTER_ROLE_BINDING = cluster_scoped(
    "rbac.authorization.k8s.io/v1", "ClusterRoleBinding", "test-cluster-role-binding"
)
MUTATING = cluster_scoped(
    "admissionregistration.k8s.io/v1", "MutatingWebhookConfiguration", "test-mutating-webhook-configuration"
)
VALIDATING = cluster_scoped(
    "admissionregistration.k8s.io/v1",
    "ValidatingWebhookConfiguration",
    "test-validating-webhook-configuration",
)
CRD = cluster_scoped("apiextensions.k8s.io/v1beta1", "CustomResourceDefinition", "test-crd")


def test_install_applies_in_order():
    version = "v0.14-test"
    manifest_in = [MUTATING, VALIDATING, DEPLOYMENT, ROLE, ROLE_BINDING, CLUSTER_ROLE, CLUSTER_ROLE_BINDING]
    expected = [ROLE, CLUSTER_ROLE, ROLE_BINDING, CLUSTER_ROLE_BINDING, DEPLOYMENT, MUTATING, VALIDATING]

    client = FakeClient()
    manifest = Manifest(manifest_in, client)
    component = Component(
        ComponentKind.EVENTING,
        spec=ComponentSpec(version=version),
        status=ComponentStatus(version="0.13-test"),
    )

    install(manifest, component)

    assert client.creates == expected
    assert component.status.get_condition(INSTALL_SUCCEEDED).status == STATUS_TRUE
    assert component.status.version == version


def test_install_error():
    old_version = "v0.13-test"
    client = FakeClient(err=RuntimeError("test"))
    manifest = Manifest([DEPLOYMENT], client)
    component = Component(
        ComponentKind.SERVING,
        spec=ComponentSpec(version="v0.14-test"),
        status=ComponentStatus(version=old_version),
    )

    with pytest.raises(InstallError, match="failed to apply non rbac manifest: test"):
        install(manifest, component)

    assert component.status.get_condition(INSTALL_SUCCEEDED).status == STATUS_FALSE
    assert component.status.version == old_version


def test_install_gateway_missing_with_default_ingress():
    client = FakeClient(err=RuntimeError('no matches for kind "Gateway" in version "v1beta1"'))
    manifest = Manifest([DEPLOYMENT], client)
    component = Component(ComponentKind.SERVING, spec=ComponentSpec(version="v0.14-test"))

    with pytest.raises(InstallError) as info:
        install(manifest, component)

    assert str(info.value).startswith("please install istio or disable the istio ingress plugin")
    condition = component.status.get_condition(INSTALL_SUCCEEDED)
    assert condition.status == STATUS_FALSE
    assert "please install istio" in condition.message


def test_install_gateway_missing_with_istio_disabled():
    client = FakeClient(err=RuntimeError('no matches for kind "Gateway" in version "v1beta1"'))
    manifest = Manifest([DEPLOYMENT], client)
    component = Component(
        ComponentKind.SERVING,
        spec=ComponentSpec(version="v0.14-test", ingress=IngressSpec(istio_enabled=False)),
    )

    with pytest.raises(InstallError, match="failed to apply non rbac manifest"):
        install(manifest, component)


def test_install_role_error_reported():
    client = FakeClient(err=RuntimeError("boom"))
    manifest = Manifest([ROLE, DEPLOYMENT], client)
    component = Component(ComponentKind.SERVING, spec=ComponentSpec(version="v0.14-test"))

    with pytest.raises(InstallError, match=r"failed to apply \(cluster\)roles: boom"):
        install(manifest, component)
    assert component.status.get_condition(INSTALL_SUCCEEDED).status == STATUS_FALSE


def test_uninstall_deletes_non_rbac_first_then_reversed():
    manifest_in = [DEPLOYMENT, ROLE, ROLE_BINDING, CLUSTER_ROLE, CLUSTER_ROLE_BINDING, CRD]
    expected = [DEPLOYMENT, CLUSTER_ROLE_BINDING, CLUSTER_ROLE, ROLE_BINDING, ROLE]

    client = FakeClient(resources_exist=True)
    uninstall(Manifest(manifest_in, client))

    assert client.deletes == expected


def test_uninstall_error():
    client = FakeClient(err=RuntimeError("gone wrong"))
    with pytest.raises(InstallError, match="failed to remove non-crd/non-rbac resources"):
        uninstall(Manifest([DEPLOYMENT], client))