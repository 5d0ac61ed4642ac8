"""Release discovery, target versions and manifest retrieval for operator components."""

from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass
from typing import Callable, Optional

import yaml

from .component import Component, ComponentKind
from .manifest import Manifest, load_manifest

KO_ENV_KEY = "KO_DATA_PATH"
VERSION_VARIABLE = "${VERSION}"
COMMA = ","
LATEST_VERSION = "latest"

_VERSION_LABEL = "app.kubernetes.io/version"
_INGRESS_DIR = "ingress"
_COMPONENT_DIRS = {
    ComponentKind.SERVING: "knative-serving",
    ComponentKind.EVENTING: "knative-eventing",
}

_cache: dict[str, Manifest] = {}

ManifestFetcher = Callable[[str], Manifest]


class ManifestVersionError(ValueError):
    """Raised when a version or the manifests for a version are unusable."""


# --- semantic versions -------------------------------------------------------

_NUM = r"(0|[1-9][0-9]*)"
_IDENT = r"[0-9A-Za-z-]+"
_SEMVER = re.compile(
    rf"v{_NUM}(?:\.{_NUM}(?:\.{_NUM}"
    rf"(-{_IDENT}(?:\.{_IDENT})*)?"
    rf"(\+{_IDENT}(?:\.{_IDENT})*)?)?)?"
)


@dataclass(frozen=True)
class _Semver:
    major: str
    minor: str
    patch: str
    prerelease: str


def _parse(version: str) -> Optional[_Semver]:
    match = _SEMVER.fullmatch(version)
    if match is None:
        return None
    major, minor, patch, prerelease, _build = match.groups()
    if prerelease:
        for ident in prerelease[1:].split("."):
            if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
                return None
    return _Semver(major, minor or "0", patch or "0", prerelease or "")


def _compare_numbers(x: str, y: str) -> int:
    if x == y:
        return 0
    if len(x) != len(y):
        return -1 if len(x) < len(y) else 1
    return -1 if x < y else 1


def _compare_prerelease(x: str, y: str) -> int:
    if x == y:
        return 0
    if not x:
        return 1
    if not y:
        return -1
    left, right = x[1:].split("."), y[1:].split(".")
    for a, b in zip(left, right):
        if a == b:
            continue
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num != b_num:
            return -1 if a_num else 1
        if a_num:
            return _compare_numbers(a, b)
        return -1 if a < b else 1
    if len(left) == len(right):
        return 0
    return -1 if len(left) < len(right) else 1


def sanitize_semver(version: str) -> str:
    """Prefix the version with 'v' unless it already starts with one."""
    return version if version.startswith("v") else f"v{version}"


def is_valid_semver(version: str) -> bool:
    """Whether the version is a valid 'v'-prefixed semantic version."""
    return _parse(version) is not None


def semver_major(version: str) -> str:
    """Return 'vMAJOR' of a valid version, or '' for an invalid one."""
    parsed = _parse(version)
    return f"v{parsed.major}" if parsed else ""


def semver_major_minor(version: str) -> str:
    """Return 'vMAJOR.MINOR' of a valid version, or '' for an invalid one."""
    parsed = _parse(version)
    return f"v{parsed.major}.{parsed.minor}" if parsed else ""


def compare_semver(left: str, right: str) -> int:
    """Compare two versions: -1, 0 or 1. Invalid versions sort below valid ones."""
    pl, pr = _parse(left), _parse(right)
    if pl is None and pr is None:
        return 0
    if pl is None:
        return -1
    if pr is None:
        return 1
    for a, b in ((pl.major, pr.major), (pl.minor, pr.minor), (pl.patch, pr.patch)):
        result = _compare_numbers(a, b)
        if result:
            return result
    return _compare_prerelease(pl.prerelease, pr.prerelease)


# --- paths -------------------------------------------------------------------

def _join(*parts: str) -> str:
    kept = [p for p in parts if p]
    return os.path.normpath(os.path.join(*kept)) if kept else ""


def _ko_data_dir() -> str:
    return os.environ.get(KO_ENV_KEY, "")


def _component_dir(component: Component) -> str:
    name = _COMPONENT_DIRS.get(component.kind)
    return _join(_ko_data_dir(), name) if name else ""


def _ingress_dir() -> str:
    return _join(_ko_data_dir(), _INGRESS_DIR)


def _substitute(urls, version: str) -> str:
    return COMMA.join(ref.url.replace(VERSION_VARIABLE, version) for ref in urls)


def _additional_manifest_path(component: Component) -> str:
    return _substitute(component.spec.additional_manifests, target_version(component))


def _target_manifest_path(component: Component) -> str:
    version = target_version(component)
    path = _substitute(component.spec.manifests, version)
    if not path:
        path = _join(_component_dir(component), version)
        if not os.path.exists(path):
            return ""
    return path


def _installed_manifest_paths(version: str, component: Component) -> list[str]:
    if component.status.manifests:
        return list(component.status.manifests)
    local = _join(_component_dir(component), version)
    if os.path.exists(local):
        return [local]
    return []


def target_manifest_path_array(component: Component) -> list[str]:
    """Return the target manifest path, followed by the additional manifests path if any."""
    paths = [_target_manifest_path(component)]
    if component.spec.additional_manifests:
        paths.append(_additional_manifest_path(component))
    return paths


# --- releases ----------------------------------------------------------------

def _releases_under(pathname: str) -> list[str]:
    with os.scandir(pathname) as entries:
        names = sorted(e.name for e in entries if os.path.isdir(os.path.join(pathname, e.name)))
    if not names:
        raise FileNotFoundError(f"unable to find any version number under the path {pathname}")
    newest_first = functools.cmp_to_key(
        lambda a, b: compare_semver(sanitize_semver(b), sanitize_semver(a))
    )
    return sorted(names, key=newest_first)


def all_releases(component: Component) -> list[str]:
    """List the release directories of the component, newest first."""
    return _releases_under(_component_dir(component))


def _latest_from_list(versions: list[str], version: str) -> str:
    if version == "":
        return versions[0]
    if version.casefold() == LATEST_VERSION:
        return version if version in versions else versions[0]
    wanted = semver_major_minor(sanitize_semver(version))
    for candidate in versions:
        if candidate.startswith(version) and semver_major_minor(sanitize_semver(candidate)) == wanted:
            return candidate
    return version


def get_latest_release(component: Component, version: str) -> str:
    """Return the newest available release matching the requested version."""
    return _latest_from_list(all_releases(component), version)


def get_latest_ingress_release(version: str) -> str:
    """Return the newest available ingress release matching the requested version."""
    return _latest_from_list(_releases_under(_ingress_dir()), version)


def latest_release(component: Component) -> str:
    """Return the newest available release of the component."""
    return get_latest_release(component, "")


def target_version(component: Component) -> str:
    """Return the version to install according to the component's spec."""
    version = component.spec.version
    if version.casefold() == LATEST_VERSION:
        return get_latest_release(component, version)
    if not component.spec.manifests:
        if version == "":
            return latest_release(component)
        sanitized = sanitize_semver(version)
        if sanitized == semver_major_minor(sanitized):
            return get_latest_release(component, version)
    return version


# --- manifests ---------------------------------------------------------------

def fetch_manifest(path: str) -> Manifest:
    """Return the manifest at the path, reading it only if not cached yet."""
    cached = _cache.get(path)
    if cached is not None:
        return cached
    manifest = load_manifest(path)
    _cache[path] = manifest
    return manifest


def _fetch_manifest_from_path(path: str) -> Manifest:
    manifest = load_manifest(path)
    _cache[path] = manifest
    return manifest


def fetch_manifest_from_array(paths: list[str]) -> Manifest:
    """Fetch every path through the cache and concatenate the manifests in order."""
    if not paths:
        raise ValueError("no manifest paths given")
    manifest = fetch_manifest(paths[0])
    for path in paths[1:]:
        manifest = manifest.append(fetch_manifest(path))
    return manifest


def clear_cache() -> None:
    """Forget every cached manifest."""
    _cache.clear()


def _validated_manifest(path: str, component: Component, fetch: ManifestFetcher) -> Manifest:
    version = target_version(component)
    try:
        manifest = fetch(path)
    except (OSError, ValueError, yaml.YAMLError) as err:
        if not component.spec.manifests:
            raise ManifestVersionError(
                f"the manifests of the target version {component.spec.version} "
                "are not available to this release"
            ) from err
        raise

    if len(manifest) == 0:
        raise ManifestVersionError(f"there is no resource available in the target manifests {path}")

    if version in ("", LATEST_VERSION):
        return manifest

    target = sanitize_semver(version)
    for resource in manifest:
        metadata = resource.get("metadata") or {}
        label = (metadata.get("labels") or {}).get(_VERSION_LABEL, "")
        sanitized = sanitize_semver(label)
        if label and semver_major_minor(target) != semver_major_minor(sanitized):
            raise ManifestVersionError(
                f"the version of the manifests {sanitized} of the component "
                f"{metadata.get('name', '')} does not match the target version "
                f"of the operator CR {target}"
            )
    return manifest


def target_manifest(component: Component) -> Manifest:
    """Return the manifest of the target version, from spec.manifests or the local releases."""
    path = _target_manifest_path(component)
    if not component.spec.manifests:
        return _validated_manifest(path, component, fetch_manifest)
    return _validated_manifest(path, component, _fetch_manifest_from_path)


def target_additional_manifest(component: Component) -> Manifest:
    """Return the manifest of spec.additionalManifests, empty if there are none."""
    path = _additional_manifest_path(component)
    if not path:
        return Manifest()
    return _validated_manifest(path, component, _fetch_manifest_from_path)


def installed_manifest(component: Component) -> Manifest:
    """Return the manifest currently installed, or the target one if nothing is recorded."""
    current = component.status.version
    if not component.status.manifests and current == "":
        return target_manifest(component)
    paths = _installed_manifest_paths(current, component)
    if not paths:
        return Manifest()
    return fetch_manifest_from_array(paths)


def is_version_valid_migration_eligible(component: Component) -> None:
    """Raise ManifestVersionError unless the target version is valid and reachable."""
    version = target_version(component)
    if version == LATEST_VERSION:
        return
    target = sanitize_semver(version)
    if not is_valid_semver(target):
        raise ManifestVersionError(
            f"target version {target} is not in a valid semantic versioning format."
        )
    if len(target.split(".")) < 2:
        raise ManifestVersionError(
            f"target version {target} should at least include the major and minor numbers."
        )

    current = component.status.version
    if current in ("", LATEST_VERSION):
        return

    current = sanitize_semver(current)
    try:
        current_minor = int(current.split(".")[1])
    except (IndexError, ValueError):
        raise ManifestVersionError(
            f"minor number of the current version {current} should be an integer."
        ) from None
    try:
        target_minor = int(target.split(".")[1])
    except (IndexError, ValueError):
        raise ManifestVersionError(
            f"minor number of the target version {target} should be an integer."
        ) from None

    if semver_major(current) != semver_major(target):
        pair = (semver_major_minor(current), semver_major_minor(target))
        if pair in (("v0.26", "v1.0"), ("v1.0", "v0.26")):
            return
        raise ManifestVersionError(
            "not supported to upgrade or downgrade across the MAJOR version. The "
            f"installed KnativeServing version is {current}."
        )

    if abs(current_minor - target_minor) < 2:
        return
    raise ManifestVersionError(
        "not supported to upgrade or downgrade across multiple MINOR versions. The "
        f"installed KnativeServing version is {current}."
    )