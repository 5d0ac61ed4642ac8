# kntransform

A library for reconciling Knative operator components (`KnativeServing` and
`KnativeEventing`) against Kubernetes manifests held as plain Python
dictionaries. It resolves which release to install, reads the manifests,
rewrites them according to the component's spec and applies them in a safe
order through a client you provide.

## Installing

```
pip install .
```

The only runtime dependency is PyYAML.

## Modules

### `kntransform.component`

The model of an operator custom resource:

- `Component` with a `kind` (`ComponentKind.SERVING` or `ComponentKind.EVENTING`),
  `name`, `resource_version`, `finalizers`, a `spec` and a `status`.
- `ComponentSpec`: `version`, `manifests` and `additional_manifests` (lists of
  `ManifestRef`, whose `url` may contain `${VERSION}`), `registry` (`Registry`),
  `high_availability` (`HighAvailability`), `workload_overrides`
  (`WorkloadOverride`), `resources` (`ResourceRequirementsOverride`), `config`,
  `service_overrides` (`ServiceOverride`), `pod_disruption_budget_overrides`
  (`PodDisruptionBudgetOverride`) and `ingress` (`IngressSpec`).
- `ComponentStatus` holding `version`, `manifests` and `Condition`s. The methods
  `mark_install_succeeded`, `mark_install_failed`, `mark_deployments_available`
  and `mark_deployments_not_ready` set the `InstallSucceeded` and
  `DeploymentsAvailable` conditions and recompute `Ready`; `get_condition`
  looks one up.
- `Extension`, an abstract interface (`manifests`, `transformers`, `reconcile`,
  `finalize`) for platform-specific additions, with `NilExtension` and
  `no_extension()` providing one that adds nothing.
- `finalizer_removal_patch(component, to_remove)` returns a compact JSON merge
  patch as bytes, or `None` when the finalizer is not present:

```python
>>> from kntransform.component import Component, ComponentKind, finalizer_removal_patch
>>> c = Component(ComponentKind.SERVING, resource_version="testVersion", finalizers=["test-finalizer"])
>>> finalizer_removal_patch(c, "test-finalizer")
b'{"metadata":{"finalizers":[],"resourceVersion":"testVersion"}}'
```

### `kntransform.manifest`

- `Manifest`: an ordered list of resources, optionally bound to a
  `ManifestClient`. `filter(*predicates)`, `transform(*transformers)` and
  `append(other)` return new manifests; `apply()` creates missing resources and
  updates existing ones in order; `delete(ignore_not_found=True)` deletes
  existing resources in reverse order. `resources` returns copies; a manifest
  also supports `len()` and iteration.
- `load_manifest(path, client=None)` reads a comma-separated list of YAML/JSON
  files, directories (their `.yaml`, `.yml` and `.json` files, sorted) or
  `http://`/`https://` URLs.
- Predicates: `by_kind(kind)`, `any_of(*predicates)`, `not_(predicate)`, `no_crds`.
- `ManifestClient` is the abstract cluster interface (`get`, `create`, `update`,
  `delete`); `get` and `delete` raise `ResourceNotFoundError` for missing
  resources. `InMemoryClient` keeps resources in a dictionary keyed by kind,
  namespace and name.
- `check_deployments(manifest, component)` reads every Deployment through the
  client and marks the component's deployments available or not ready;
  `is_deployment_available(deployment)` checks the `Available` condition.

### `kntransform.releases`

Release directories are looked up under the directory named by the
`KO_DATA_PATH` environment variable, in `knative-serving/<version>`,
`knative-eventing/<version>` and `ingress/<version>`.

- `target_version(component)` resolves an empty version, `latest` or a
  `major.minor` version to the newest matching release directory.
- `all_releases`, `latest_release`, `get_latest_release` and
  `get_latest_ingress_release` list and pick releases, newest first.
- `target_manifest`, `target_additional_manifest` and `installed_manifest` load
  manifests and check that their `app.kubernetes.io/version` labels match the
  target `major.minor`; problems raise `ManifestVersionError`.
- `target_manifest_path_array(component)` returns the target path followed by
  the additional manifests path, if any.
- `is_version_valid_migration_eligible(component)` raises `ManifestVersionError`
  for invalid target versions and for upgrades or downgrades across more than one
  minor version or across major versions (0.26 ↔ 1.0 excepted).
- `fetch_manifest`, `fetch_manifest_from_array` and `clear_cache` manage a
  module-level cache of loaded manifests.
- Version helpers: `sanitize_semver`, `is_valid_semver`, `semver_major`,
  `semver_major_minor`, `compare_semver`.

### `kntransform.install`

- `install(manifest, component)` applies (cluster) roles, then role bindings,
  then everything else, then webhook configurations. On success it marks the
  install succeeded and records the target version in the status; on failure it
  marks the install failed and raises `InstallError`.
- `uninstall(manifest)` deletes everything except CRDs, removing RBAC resources
  last.

### Transformers

A transformer is a callable that takes one resource dictionary and changes it in
place.

- `kntransform.job.job_transform(component)` renames Jobs to
  `<name>-<serving|eventing>-<version>` (or `<generateName><kind>-<version>`)
  and sets `sidecar.istio.io/inject: "false"` on the pod template when unset.
- `kntransform.config_maps.config_map_transform(config, logger=None)` writes
  `spec.config` entries into ConfigMaps; the `config-` name prefix is optional.
  `update_config_map` does the writing and raises `TypeError` if `data` is not a
  mapping.
- `kntransform.hpa.high_availability_transform(component)` sets Deployment
  replicas from `spec.high_availability` (skipping workloads governed by an HPA,
  unsupported workloads and those with a replica override) and adjusts HPAs via
  `hpa_transform(resource, replicas)`. `has_horizontal_pod_autoscaler` and
  `get_hpa_name` map workloads to their HPAs.
- `kntransform.images.image_transform(registry, logger=None)` rewrites container
  images and image-valued env vars of Deployments, DaemonSets, StatefulSets,
  Jobs and caching `Image` resources, and appends image pull secrets.
  `get_image_name` extracts the bare image name from a reference.
- `kntransform.resources.resource_requirements_transform(component, logger=None)`
  merges `spec.resources` limits and requests into Deployment containers. The
  module also provides `merge_env`, `find_env_override`, `merge_probe` and
  `find_probe_override`, which return merged copies rather than editing their
  arguments.
- `kntransform.services.services_transform(component, logger=None)` merges
  labels, annotations and selectors into named Services;
  `pod_disruption_budgets_transform(component, logger=None)` sets
  `minAvailable` of named PodDisruptionBudgets. Both return `None` when the
  component has no such overrides.

## Example

```python
import logging

from kntransform.component import Component, ComponentKind, ComponentSpec, HighAvailability, Registry
from kntransform.hpa import high_availability_transform
from kntransform.images import image_transform
from kntransform.install import install
from kntransform.manifest import InMemoryClient, load_manifest

log = logging.getLogger("operator")

serving = Component(
    kind=ComponentKind.SERVING,
    spec=ComponentSpec(
        version="1.0.0",
        registry=Registry(default="registry.example.com/knative/${NAME}:v1"),
        high_availability=HighAvailability(replicas=2),
    ),
)

manifest = load_manifest("manifests/serving-core.yaml", client=InMemoryClient())
manifest = manifest.transform(
    image_transform(serving.spec.registry, log),
    high_availability_transform(serving),
)
install(manifest, serving)
```

`Manifest.transform` runs the transformers over a copy of every resource and
returns a new manifest; `None` transformers are skipped.

## What it does not do

The package has no command-line program and no controller loop: it does not
watch a cluster or reconcile on its own. It ships no client for a real
Kubernetes API server; `InMemoryClient` is the only `ManifestClient`, and
talking to a cluster means implementing that interface yourself.

## Running the tests

```
pip install ".[test]"
pytest
```