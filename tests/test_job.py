import pytest

from kntransform.component import Component, ComponentKind, ComponentSpec
from kntransform.job import ISTIO_ANNOTATION_NAME, job_transform

STORAGE_VERSION_MIGRATION = "storage-version-migration"


def create_job(name, gen):
    metadata = {"generateName": gen + "-"}
    if name:
        metadata["name"] = name
    return {"apiVersion": "batch/v1", "kind": "Job", "metadata": metadata}


@pytest.mark.parametrize(
    "kind, version, name, gen, expected",
    [
        (ComponentKind.SERVING, "0.15.2", STORAGE_VERSION_MIGRATION, "",
         STORAGE_VERSION_MIGRATION + "-serving-0.15.2"),
        (ComponentKind.EVENTING, "0.16.0", STORAGE_VERSION_MIGRATION, "",
         STORAGE_VERSION_MIGRATION + "-eventing-0.16.0"),
        (ComponentKind.SERVING, "0.15.2", "", STORAGE_VERSION_MIGRATION,
         STORAGE_VERSION_MIGRATION + "-serving-0.15.2"),
        (ComponentKind.EVENTING, "0.16.0", "", STORAGE_VERSION_MIGRATION,
         STORAGE_VERSION_MIGRATION + "-eventing-0.16.0"),
    ],
)
def test_job_transform_name(kind, version, name, gen, expected):
    job = create_job(name, gen)
    component = Component(kind, spec=ComponentSpec(version=version))
    job_transform(component)(job)
    assert job["metadata"]["name"] == expected


def test_job_transform_adds_istio_annotation():
    job = create_job(STORAGE_VERSION_MIGRATION, "")
    job_transform(Component(ComponentKind.SERVING, spec=ComponentSpec(version="0.15.2")))(job)
    annotations = job["spec"]["template"]["metadata"]["annotations"]
    assert annotations == {ISTIO_ANNOTATION_NAME: "false"}


def test_job_transform_keeps_existing_istio_annotation():
    job = create_job(STORAGE_VERSION_MIGRATION, "")
    job["spec"] = {
        "template": {"metadata": {"annotations": {ISTIO_ANNOTATION_NAME: "true", "x": "y"}}}
    }
    job_transform(Component(ComponentKind.SERVING, spec=ComponentSpec(version="0.15.2")))(job)
    annotations = job["spec"]["template"]["metadata"]["annotations"]
    assert annotations == {ISTIO_ANNOTATION_NAME: "true", "x": "y"}


def test_job_transform_ignores_other_kinds():
    deployment = {"kind": "Deployment", "metadata": {"name": "controller"}}
    job_transform(Component(ComponentKind.SERVING, spec=ComponentSpec(version="0.15.2")))(deployment)
    assert deployment == {"kind": "Deployment", "metadata": {"name": "controller"}}