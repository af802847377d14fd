"""Tests for aumai_meshenv.models — Pydantic data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from aumai_meshenv.models import (
    HTTP_OK,
    AuthPolicy,
    ConfigDescriptor,
    ConfigObject,
    EnvironmentConfig,
    ProbeResponse,
    RegistryKind,
    ScenarioStatus,
)

# ---------------------------------------------------------------------------
# EnvironmentConfig
# ---------------------------------------------------------------------------


class TestEnvironmentConfig:
    def test_defaults_request_engine_created_namespaces(self) -> None:
        config = EnvironmentConfig()
        assert config.namespace == ""
        assert config.istio_namespace == ""

    def test_default_registry_and_auth(self) -> None:
        config = EnvironmentConfig()
        assert config.registry == RegistryKind.kubernetes
        assert config.auth == AuthPolicy.NONE

    def test_registry_parsed_from_string(self) -> None:
        config = EnvironmentConfig(registry="eureka")
        assert config.registry is RegistryKind.eureka

    def test_negative_verbosity_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EnvironmentConfig(verbosity=-1)

    def test_negative_propagation_delay_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EnvironmentConfig(propagation_delay=-0.5)

    def test_unknown_auth_policy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EnvironmentConfig(auth="PLAINTEXT")


# ---------------------------------------------------------------------------
# ConfigObject / ConfigDescriptor
# ---------------------------------------------------------------------------


class TestConfigObject:
    def test_key_combines_type_namespace_name(self) -> None:
        obj = ConfigObject(type="route-rule", name="default", namespace="apps")
        assert obj.key() == "route-rule/apps/default"

    def test_resource_version_defaults_empty(self) -> None:
        assert ConfigObject(type="route-rule", name="x").resource_version == ""

    def test_descriptor_api_version(self) -> None:
        desc = ConfigDescriptor(type="route-rule", kind="RouteRule", plural="routerules")
        assert desc.api_version == "config.istio.io/v1alpha2"

    def test_descriptor_is_hashable(self) -> None:
        desc = ConfigDescriptor(type="route-rule", kind="RouteRule", plural="routerules")
        assert {desc: 1}[desc] == 1


# ---------------------------------------------------------------------------
# ProbeResponse
# ---------------------------------------------------------------------------


class TestProbeResponse:
    def test_empty_response_is_not_ok(self) -> None:
        assert not ProbeResponse().is_ok()

    def test_first_code_200_is_ok(self) -> None:
        assert ProbeResponse(code=[HTTP_OK, "503"]).is_ok()

    def test_first_code_non_200_is_not_ok(self) -> None:
        assert not ProbeResponse(code=["503", HTTP_OK]).is_ok()

    def test_sequences_are_independent(self) -> None:
        response = ProbeResponse(code=["200", "200"], version=["v1"])
        assert len(response.code) == 2
        assert len(response.version) == 1
        assert response.id == []


# ---------------------------------------------------------------------------
# ScenarioStatus
# ---------------------------------------------------------------------------


class TestScenarioStatus:
    def test_passed_without_error(self) -> None:
        assert ScenarioStatus(name="ok").passed

    def test_carries_failure_cause(self) -> None:
        cause = RuntimeError("boom")
        status = ScenarioStatus(name="bad", error=cause)
        assert not status.passed
        assert status.error is cause
