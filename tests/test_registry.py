"""
Tests for the registry module
=============================

Unit tests for check registration and lookup.
"""

from types import SimpleNamespace

import pytest

from aws_doctor.errors import CheckRegistryError
from aws_doctor.models import Check, CheckResult, CheckStage, CheckStatus
from aws_doctor.registry import CheckRegistry


def make_check(check_id: str, stage: CheckStage = CheckStage.ENVIRONMENT) -> Check:
    return Check(
        id=check_id,
        name=f"Check {check_id}",
        description=f"Description of {check_id}",
        stage=stage,
        execute=lambda context: CheckResult(status=CheckStatus.PASS, message="ok"),
    )


@pytest.fixture
def registry():
    return CheckRegistry()


class TestRegister:
    """Test CheckRegistry.register."""

    def test_register_and_lookup(self, registry):
        check = make_check("a")
        registry.register(check)
        assert registry.get_check("a") is check
        assert registry.require_check("a") is check
        assert registry.get_check_count() == 1

    def test_duplicate_id_rejected(self, registry):
        registry.register(make_check("a"))
        with pytest.raises(CheckRegistryError) as exc_info:
            registry.register(make_check("a", CheckStage.CONNECTIVITY))

        assert exc_info.value.metadata["operation"] == "register"
        assert exc_info.value.metadata["check_id"] == "a"
        # The rejected check must not leak into the connectivity stage
        assert registry.get_checks_for_stage(CheckStage.CONNECTIVITY) == []

    def test_invalid_stage_rejected(self, registry):
        bad = SimpleNamespace(
            id="x", name="X", description="d", stage="network", execute=lambda c: None
        )
        with pytest.raises(CheckRegistryError):
            registry.register(bad)
        assert registry.get_check_count() == 0

    def test_missing_execute_rejected(self, registry):
        bad = SimpleNamespace(
            id="x", name="X", description="d", stage=CheckStage.ENVIRONMENT, execute=None
        )
        with pytest.raises(CheckRegistryError):
            registry.register(bad)

    def test_empty_id_rejected(self, registry):
        with pytest.raises(CheckRegistryError):
            registry.register(make_check(""))


class TestQueries:
    """Test stage queries and distribution."""

    def test_registration_order_preserved(self, registry):
        registry.register_all([make_check("b"), make_check("a"), make_check("c")])
        ids = [c.id for c in registry.get_checks_for_stage(CheckStage.ENVIRONMENT)]
        assert ids == ["b", "a", "c"]
        assert registry.get_all_check_ids() == ["b", "a", "c"]

    def test_stage_list_is_copy(self, registry):
        registry.register(make_check("a"))
        registry.get_checks_for_stage(CheckStage.ENVIRONMENT).clear()
        assert len(registry.get_checks_for_stage(CheckStage.ENVIRONMENT)) == 1

    def test_unknown_lookup(self, registry):
        assert registry.get_check("missing") is None
        with pytest.raises(CheckRegistryError) as exc_info:
            registry.require_check("missing")
        assert exc_info.value.metadata["operation"] == "lookup"

    def test_stage_distribution(self, registry):
        registry.register_all([
            make_check("a"),
            make_check("b", CheckStage.CONFIGURATION),
            make_check("c", CheckStage.CONFIGURATION),
        ])
        assert registry.get_stage_distribution() == {
            CheckStage.ENVIRONMENT: 1,
            CheckStage.CONFIGURATION: 2,
            CheckStage.AUTHENTICATION: 0,
            CheckStage.CONNECTIVITY: 0,
        }

    def test_clear(self, registry):
        registry.register(make_check("a"))
        registry.clear()
        assert registry.get_check_count() == 0
        assert registry.get_checks_for_stage(CheckStage.ENVIRONMENT) == []
