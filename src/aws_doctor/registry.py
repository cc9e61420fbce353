"""
Check Registry
==============

In-memory, stage-indexed catalog of diagnostic checks.
"""

import logging
from typing import Any, Optional

from aws_doctor.errors import CheckRegistryError
from aws_doctor.models import STAGE_ORDER, Check, CheckStage

logger = logging.getLogger(__name__)


class CheckRegistry:
    """Authoritative catalog of checks, keyed by id and grouped by stage.

    Any object exposing ``id``, ``name``, ``description``, ``stage`` and a
    callable ``execute`` can be registered. Checks are returned in
    registration order.
    """

    def __init__(self):
        self._checks: dict[str, Check] = {}
        self._stage_checks: dict[CheckStage, list[Check]] = {
            stage: [] for stage in STAGE_ORDER
        }

    def register(self, check: Check) -> None:
        """Register a check.

        Validation runs before any state changes, so a rejected check
        leaves the registry untouched.

        Raises:
            CheckRegistryError: If the id is already registered or the
                check is malformed.
        """
        check_id = getattr(check, "id", None)
        if not check_id or not isinstance(check_id, str):
            raise CheckRegistryError(
                "Check must have a valid string ID", operation="register"
            )

        if check_id in self._checks:
            raise CheckRegistryError(
                f"Check with ID '{check_id}' is already registered",
                operation="register",
                check_id=check_id,
            )

        for attr in ("name", "description"):
            value = getattr(check, attr, None)
            if not value or not isinstance(value, str):
                raise CheckRegistryError(
                    f"Check must have a valid string {attr}",
                    operation="register",
                    check_id=check_id,
                )

        stage = getattr(check, "stage", None)
        if not isinstance(stage, CheckStage):
            raise CheckRegistryError(
                f"Invalid check stage: {stage!r}",
                operation="register",
                check_id=check_id,
            )

        if not callable(getattr(check, "execute", None)):
            raise CheckRegistryError(
                "Check must implement an execute callable",
                operation="register",
                check_id=check_id,
            )

        self._checks[check_id] = check
        self._stage_checks[stage].append(check)
        logger.debug(f"Registered check {check_id} in stage {stage.value}")

    def register_all(self, checks: list[Any]) -> None:
        """Register several checks in order; stops at the first failure."""
        for check in checks:
            self.register(check)

    def get_checks_for_stage(self, stage: CheckStage) -> list[Check]:
        """Return checks for ``stage`` in registration order (a copy)."""
        return list(self._stage_checks.get(stage, []))

    def get_check(self, check_id: str) -> Optional[Check]:
        return self._checks.get(check_id)

    def require_check(self, check_id: str) -> Check:
        """Return the check for ``check_id``.

        Raises:
            CheckRegistryError: If no check with that id is registered.
        """
        check = self._checks.get(check_id)
        if check is None:
            raise CheckRegistryError(
                f"No check registered with ID '{check_id}'",
                operation="lookup",
                check_id=check_id,
            )
        return check

    def get_all_check_ids(self) -> list[str]:
        return list(self._checks)

    def get_check_count(self) -> int:
        return len(self._checks)

    def get_stage_distribution(self) -> dict[CheckStage, int]:
        """Map each stage (in pipeline order) to its number of checks."""
        return {stage: len(self._stage_checks[stage]) for stage in STAGE_ORDER}

    def clear(self) -> None:
        """Remove all checks. Intended for test isolation."""
        self._checks.clear()
        for stage_checks in self._stage_checks.values():
            stage_checks.clear()
