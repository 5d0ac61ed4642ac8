"""Overriding ConfigMap data from the operator custom resource."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .component import Transformer

_CONFIG_PREFIX_LENGTH = len("config-")
_LOG = logging.getLogger(__name__)


def config_map_transform(
    config: Mapping[str, Mapping[str, str]], logger: Optional[logging.Logger] = None
) -> Transformer:
    """Set the data of ConfigMaps named in the config; the 'config-' prefix is optional."""

    def transform(resource: dict) -> None:
        if resource.get("kind") != "ConfigMap":
            return
        name = (resource.get("metadata") or {}).get("name") or ""
        if name in config:
            update_config_map(resource, config[name], logger)
            return
        if len(name) >= _CONFIG_PREFIX_LENGTH:
            short = name[_CONFIG_PREFIX_LENGTH:]
            if short in config:
                update_config_map(resource, config[short], logger)

    return transform


def update_config_map(
    config_map: dict, data: Mapping[str, str], logger: Optional[logging.Logger] = None
) -> None:
    """Write the entries into the ConfigMap's data, logging every value that changes.

    Raises TypeError if the ConfigMap's data is not a mapping.
    """
    log = logger or _LOG
    name = (config_map.get("metadata") or {}).get("name") or ""
    for key, value in data.items():
        current = config_map.get("data")
        if current is not None and not isinstance(current, dict):
            raise TypeError(
                f".data accessor error: {current!r} is of the type "
                f"{type(current).__name__}, expected a map"
            )
        if current is not None and key in current:
            previous = current[key]
            if previous == value:
                continue
            log.info("Setting map=%s key=%s value=%s previous=%s", name, key, value, previous)
        else:
            log.info("Setting map=%s key=%s value=%s", name, key, value)
        if current is None:
            current = config_map["data"] = {}
        current[key] = value