"""Checker registry — explicit registration table plus package discovery.

Checker modules call :func:`register_checker` at import time. Discovery
imports every module in ``ui_sentinel.checkers.builtin`` (and any extra
packages handed to it), so adding a checker needs no change elsewhere.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ui_sentinel.checkers.base import (
    CheckerDescriptor,
    ConditionChecker,
    DriverCapability,
)
from ui_sentinel.core.models import CheckerOutcome, ConditionEvent, NoMatch
from ui_sentinel.exceptions import CheckerRegistrationError

logger = logging.getLogger(__name__)

BUILTIN_PACKAGE = "ui_sentinel.checkers.builtin"

CheckerFactory = Callable[[CheckerDescriptor], ConditionChecker]


@dataclass(frozen=True)
class Registration:
    descriptor: CheckerDescriptor
    factory: CheckerFactory


_table: list[Registration] = []
_discovered: set[str] = set()


def register_checker(
    descriptor: CheckerDescriptor, factory: CheckerFactory
) -> CheckerFactory:
    """Add a checker to the process-wide registration table."""
    _table.append(Registration(descriptor, factory))
    return factory


def discover(packages: Iterable[str] = (BUILTIN_PACKAGE,)) -> list[Registration]:
    """Import every module of the given packages and return the table.

    Import errors are fatal: a checker that cannot load is a programming error.
    """
    for package_name in packages:
        if package_name in _discovered:
            continue
        try:
            package = importlib.import_module(package_name)
        except ImportError as e:
            raise CheckerRegistrationError(
                f"Cannot import checker package {package_name!r}: {e}"
            ) from e
        for info in sorted(pkgutil.iter_modules(package.__path__), key=lambda m: m.name):
            if info.name.startswith("_"):
                continue
            module_path = f"{package_name}.{info.name}"
            try:
                importlib.import_module(module_path)
            except Exception as e:
                raise CheckerRegistrationError(
                    f"Failed to import checker module {module_path}: {e}"
                ) from e
            logger.debug("Loaded checker module %s", module_path)
        _discovered.add(package_name)
    return list(_table)


class CheckerRegistry:
    """Priority-ordered, validated set of checker instances."""

    def __init__(self, registrations: Iterable[Registration]):
        seen: dict[str, Registration] = {}
        instances: list[ConditionChecker] = []
        for reg in registrations:
            checker_id = reg.descriptor.id
            if not checker_id:
                raise CheckerRegistrationError("Checker registered without an id")
            if checker_id in seen:
                raise CheckerRegistrationError(
                    f"Duplicate checker id {checker_id!r}"
                )
            seen[checker_id] = reg
            try:
                instance = reg.factory(reg.descriptor)
            except Exception as e:
                raise CheckerRegistrationError(
                    f"Failed to construct checker {checker_id!r}: {e}"
                ) from e
            if not isinstance(instance, ConditionChecker):
                raise CheckerRegistrationError(
                    f"Checker {checker_id!r} produced {type(instance).__name__}, "
                    f"which is not a ConditionChecker"
                )
            instance.descriptor = reg.descriptor
            instances.append(instance)

        # sorted() is stable: equal priorities keep registration order.
        self._checkers = tuple(sorted(instances, key=lambda c: c.priority))

    @classmethod
    def default(cls, extra_packages: Iterable[str] = ()) -> CheckerRegistry:
        """Registry of the built-in checkers plus any extra packages."""
        return cls(discover((BUILTIN_PACKAGE, *extra_packages)))

    @property
    def checkers(self) -> tuple[ConditionChecker, ...]:
        return self._checkers

    def __len__(self) -> int:
        return len(self._checkers)

    def ids(self) -> list[str]:
        return [c.id for c in self._checkers]

    def get(self, checker_id: str) -> ConditionChecker:
        """Return a checker by id, or raise ValueError."""
        for checker in self._checkers:
            if checker.id == checker_id:
                return checker
        available = ", ".join(self.ids()) or "(none)"
        raise ValueError(f"Unknown checker: {checker_id!r}. Available: {available}")

    def first_match(
        self, driver: Optional[DriverCapability], event: ConditionEvent
    ) -> CheckerOutcome:
        """Run checkers in priority order and stop at the first match."""
        for checker in self._checkers:
            outcome = checker.check(driver, event)
            if outcome.matched:
                logger.info("Checker %s matched", checker.id)
                return outcome
        return NoMatch("*")
