"""Tests for PipelineSettings and configuration models."""

import pytest
from pydantic import ValidationError

from sluice.domain import ConnectionConfig, LayoutConfig, ProfilesConfig
from sluice.settings import PipelineSettings


def test_settings_defaults(monkeypatch):
    for name in ("SLUICE_CONCURRENCY", "SLUICE_FETCH_TIMEOUT_MS", "SLUICE_BULKER_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = PipelineSettings()

    assert settings.concurrency == 10
    assert settings.fetch_timeout_ms == 2000
    assert settings.fetch_timeout_seconds == 2.0
    assert settings.max_payload_bytes == 1_000_000
    assert settings.bulker_url is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SLUICE_CONCURRENCY", "20")
    monkeypatch.setenv("SLUICE_BULKER_URL", "http://bulker:3042")
    monkeypatch.setenv("SLUICE_BULKER_AUTH_KEY", "key")

    settings = PipelineSettings()

    assert settings.concurrency == 20
    assert settings.bulker_url == "http://bulker:3042"
    assert settings.bulker_auth_key == "key"


def test_settings_validation():
    with pytest.raises(ValidationError):
        PipelineSettings(concurrency=0)


def test_connection_config_from_camel_case():
    connection = ConnectionConfig.model_validate(
        {
            "id": "conn-1",
            "workspaceId": "ws-1",
            "destinationType": "profiles",
            "options": {
                "deduplicate": True,
                "primaryKey": ["message_id"],
                "functionsEnv": {"IDENTIFYING_TRAITS": "email"},
                "dataLayout": "segment",
                "unknownOption": 1,
            },
        }
    )

    assert connection.workspace_id == "ws-1"
    assert connection.destination_type == "profiles"
    assert connection.options.has_deduplication
    assert not hasattr(connection.options, "data_layout")


def test_deduplication_requires_primary_key():
    connection = ConnectionConfig.model_validate({"id": "c", "options": {"deduplicate": True}})

    assert not connection.options.has_deduplication


def test_layout_config_defaults():
    assert LayoutConfig().data_layout == "segment-single-table"
    assert LayoutConfig().keep_original_names is False


def test_profiles_config_defaults():
    config = ProfilesConfig(profileBuilderId="pb")

    assert config.profile_window_days == 365
    assert config.events_database == "profiles"
    assert config.events_collection("ws") == "profiles-raw-ws-pb"
    assert config.traits_collection("ws") == "profiles-traits-ws-pb"
