import logging

import pytest

from kntransform.config_maps import config_map_transform, update_config_map


def create_config_map(name, data):
    config_map = {"kind": "ConfigMap", "metadata": {"name": name}}
    if data is not None:
        config_map["data"] = dict(data)
    return config_map


@pytest.mark.parametrize(
    "config_name, config_data, initial, expected",
    [
        (
            "logging",
            {"loglevel.controller": "debug", "loglevel.webhook": "debug"},
            {"loglevel.controller": "info", "loglevel.webhook": "info"},
            {"loglevel.controller": "debug", "loglevel.webhook": "debug"},
        ),
        (
            "logging",
            {"loglevel.controller": "debug", "loglevel.webhook": "debug"},
            None,
            {"loglevel.controller": "debug", "loglevel.webhook": "debug"},
        ),
        (
            "config-logging",
            {"loglevel.controller": "debug"},
            {"loglevel.controller": "info", "loglevel.webhook": "info"},
            {"loglevel.controller": "debug", "loglevel.webhook": "info"},
        ),
    ],
    ids=["change-config-logging", "change-config-logging-empty-data", "change-using-real-configmap-name"],
)
def test_config_map_transform(config_name, config_data, initial, expected):
    config_map = create_config_map("config-logging", initial)
    config_map_transform({config_name: config_data})(config_map)
    assert config_map["data"] == expected


def test_invalid_config_map():
    config_map = create_config_map("name", None)
    config_map["data"] = "not-a-map"
    with pytest.raises(TypeError):
        config_map_transform({"name": {"k": "v"}})(config_map)


def test_other_kinds_untouched():
    resource = {"kind": "Secret", "metadata": {"name": "config-logging"}}
    config_map_transform({"logging": {"a": "b"}})(resource)
    assert resource == {"kind": "Secret", "metadata": {"name": "config-logging"}}


def test_unmatched_config_map_untouched():
    config_map = create_config_map("config-network", {"a": "b"})
    config_map_transform({"logging": {"a": "c"}})(config_map)
    assert config_map["data"] == {"a": "b"}


def test_update_config_map_logs_only_changes(caplog):
    logger = logging.getLogger("kntransform.test.config_maps")
    caplog.set_level(logging.INFO, logger=logger.name)
    config_map = create_config_map("config-logging", {"same": "value", "changed": "old"})

    update_config_map(config_map, {"same": "value", "changed": "new"}, logger)

    assert config_map["data"] == {"same": "value", "changed": "new"}
    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 1
    assert "key=changed" in messages[0]
    assert "previous=old" in messages[0]