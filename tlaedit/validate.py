from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .catalog import Catalog
from .config import DEFAULT_CONFIG, EngineConfig
from .effects import BranchEffect, branch_effects
from .syntax import Module

logger = logging.getLogger(__name__)


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Violation:
    check: str
    severity: Severity
    action: str | None
    message: str
    path: str | None


@dataclass(frozen=True)
class ValidationResult:
    module_name: str
    violations: tuple[Violation, ...]

    @property
    def errors(self) -> tuple[Violation, ...]:
        return tuple(v for v in self.violations if v.severity == Severity.ERROR)

    @property
    def warnings(self) -> tuple[Violation, ...]:
        return tuple(v for v in self.violations if v.severity == Severity.WARNING)

    @property
    def ok(self) -> bool:
        return len(self.errors) == 0


@dataclass
class ValidationContext:
    catalog: Catalog
    action: str | None = None
    violations: list[Violation] = field(default_factory=list)

    def error(self, check: str, message: str, path: str | None = None) -> None:
        self.violations.append(Violation(check, Severity.ERROR, self.action, message, path))

    def warning(self, check: str, message: str, path: str | None = None) -> None:
        self.violations.append(Violation(check, Severity.WARNING, self.action, message, path))


def check_branch(branch: BranchEffect, ctx: ValidationContext, path: str) -> None:
    variables = ctx.catalog.variables
    declared = frozenset(variables)

    for name in sorted((branch.primed | branch.unchanged | branch.unresolved) - declared):
        ctx.error(
            "undeclared_variable",
            f"'{name}' is not a declared variable",
            path,
        )

    for name in variables:
        if name in branch.primed and name in branch.unchanged:
            ctx.error(
                "primed_and_unchanged",
                f"Variable '{name}' is both assigned and left unchanged",
                path,
            )
        elif name not in branch.primed and name not in branch.unchanged:
            ctx.error(
                "missing_variable",
                f"Variable '{name}' is neither assigned nor left unchanged",
                path,
            )
        if branch.primed_counts.get(name, 0) > 1:
            ctx.error(
                "duplicate_effect",
                f"Variable '{name}' is assigned {branch.primed_counts[name]} times",
                path,
            )
        if branch.unchanged_counts.get(name, 0) > 1:
            ctx.error(
                "duplicate_effect",
                f"Variable '{name}' is listed as unchanged {branch.unchanged_counts[name]} times",
                path,
            )


def check_locations(ctx: ValidationContext) -> None:
    catalog = ctx.catalog
    enumeration = catalog.location_enumeration
    if enumeration is None:
        return
    declared = set(enumeration.values)
    used: set[str] = set()
    for use in catalog.location_uses():
        used.add(use.value.value)
        if use.value.value not in declared:
            ctx.action = use.action
            ctx.error(
                "undeclared_location",
                f"Location \"{use.value.value}\" ({use.role}) is not in {enumeration.declaration.name}",
            )
    ctx.action = None
    for value in enumeration.values:
        if value not in used:
            ctx.warning(
                "unreferenced_location",
                f"Location \"{value}\" is declared in {enumeration.declaration.name} but no action uses it",
            )


def validate(
    module: Module,
    config: EngineConfig = DEFAULT_CONFIG,
    *,
    catalog: Catalog | None = None,
) -> ValidationResult:
    """Check the coverage invariant on every action and the location set."""
    if catalog is None:
        catalog = Catalog.from_module(module, config)
    ctx = ValidationContext(catalog)
    for defn in catalog.checked_actions():
        ctx.action = defn.name
        for i, branch in enumerate(branch_effects(defn, catalog)):
            check_branch(branch, ctx, f"branch {i + 1}")
    ctx.action = None
    check_locations(ctx)

    violations = sorted(
        ctx.violations, key=lambda v: v.severity != Severity.ERROR
    )
    result = ValidationResult(module.name, tuple(violations))
    logger.debug(
        "validated %s: %d errors, %d warnings",
        module.name,
        len(result.errors),
        len(result.warnings),
    )
    return result
