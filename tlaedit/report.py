"""Human-readable and machine-readable reports for checks and edits."""

from __future__ import annotations

import os
from typing import Any

import jinja2

from .catalog import Catalog
from .errors import ConsistencyError, EditError
from .rewrite import TransformOutcome
from .serialization import error_to_json, violation_to_json
from .validate import ValidationResult

_TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")
_ENV = jinja2.Environment(
    loader=jinja2.FileSystemLoader(_TEMPLATE_DIR),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)


def _stats(catalog: Catalog) -> dict[str, int]:
    enumeration = catalog.location_enumeration
    return {
        "variable_count": len(catalog.variables),
        "action_count": len(catalog.actions),
        "location_count": len(enumeration.values) if enumeration is not None else 0,
    }


def format_report(
    result: ValidationResult,
    catalog: Catalog,
    *,
    file_path: str | None = None,
    outcome: TransformOutcome | None = None,
) -> str:
    """Human-readable report for terminal output."""
    template = _ENV.get_template("report.txt.j2")
    return template.render(
        module_name=result.module_name,
        file_path=file_path,
        error=None,
        outcome=outcome,
        renames=sorted(outcome.renames.items()) if outcome is not None else [],
        errors=result.errors,
        warnings=result.warnings,
        **_stats(catalog),
    )


def format_error(error: EditError, module_name: str, *, file_path: str | None = None) -> str:
    template = _ENV.get_template("report.txt.j2")
    return template.render(
        module_name=module_name,
        file_path=file_path,
        error=error,
        error_violations=error.violations if isinstance(error, ConsistencyError) else (),
    )


def report_json(
    result: ValidationResult,
    catalog: Catalog,
    *,
    file_path: str | None = None,
    outcome: TransformOutcome | None = None,
) -> dict[str, Any]:
    """Machine-readable report for pipeline integration."""
    d: dict[str, Any] = {
        "module": result.module_name,
        "file": file_path,
        "ok": result.ok,
        "error_count": len(result.errors),
        "warning_count": len(result.warnings),
        **_stats(catalog),
        "violations": [violation_to_json(v) for v in result.violations],
    }
    if outcome is not None:
        d["touched"] = list(outcome.touched)
        d["renames"] = dict(outcome.renames)
    return d


def error_json(error: EditError, module_name: str, *, file_path: str | None = None) -> dict[str, Any]:
    return {
        "module": module_name,
        "file": file_path,
        "ok": False,
        "error": error_to_json(error),
    }
