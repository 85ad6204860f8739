"""JSON serialization for edit requests, violations and errors.

Edit requests serialize to a dict with a "type" discriminator field.
Round-trip: request_from_json(request_to_json(r)) == r for all r.
An edit script is a JSON list of requests.
"""

from __future__ import annotations

import json
from typing import Any

from .edits import AddVariable, EditRequest, SplitAction
from .errors import ConsistencyError, EditError, TlaSyntaxError
from .validate import Severity, Violation


# ---------------------------------------------------------------------------
# Edit requests
# ---------------------------------------------------------------------------


def request_to_json(r: EditRequest) -> dict[str, Any]:
    if isinstance(r, AddVariable):
        d: dict[str, Any] = {"type": "add_variable", "name": r.name, "init": r.init_expr}
        if r.type_expr is not None:
            d["type_expr"] = r.type_expr
        return d
    elif isinstance(r, SplitAction):
        d = {
            "type": "split_action",
            "action": r.action_name,
            "first_half": sorted(r.first_half),
        }
        if r.new_name is not None:
            d["new_name"] = r.new_name
        if r.new_location is not None:
            d["new_location"] = r.new_location
        return d
    raise TypeError(f"Unknown edit request type: {type(r)}")


def request_from_json(d: dict[str, Any]) -> EditRequest:
    t = d["type"]
    if t == "add_variable":
        return AddVariable(
            name=d["name"],
            init_expr=d["init"],
            type_expr=d.get("type_expr"),
        )
    elif t == "split_action":
        return SplitAction(
            action_name=d["action"],
            first_half=frozenset(d.get("first_half", ())),
            new_name=d.get("new_name"),
            new_location=d.get("new_location"),
        )
    raise ValueError(f"Unknown edit request type: {t}")


# ---------------------------------------------------------------------------
# Violations and errors
# ---------------------------------------------------------------------------


def violation_to_json(v: Violation) -> dict[str, Any]:
    return {
        "check": v.check,
        "severity": v.severity.value,
        "action": v.action,
        "message": v.message,
        "path": v.path,
    }


def violation_from_json(d: dict[str, Any]) -> Violation:
    return Violation(
        check=d["check"],
        severity=Severity(d["severity"]),
        action=d.get("action"),
        message=d["message"],
        path=d.get("path"),
    )


def error_to_json(e: EditError) -> dict[str, Any]:
    d: dict[str, Any] = {
        "type": "error",
        "kind": e.kind.value,
        "message": e.message,
        "location": e.location,
    }
    if isinstance(e, TlaSyntaxError):
        d["offset"] = e.offset
        d["line"] = e.line
        d["column"] = e.column
        d["expected"] = e.expected
    elif isinstance(e, ConsistencyError):
        d["violations"] = [violation_to_json(v) for v in e.violations]
    return d


# ---------------------------------------------------------------------------
# Convenience: dump / load entire edit scripts as JSON strings
# ---------------------------------------------------------------------------


def dumps(requests: list[EditRequest]) -> str:
    return json.dumps([request_to_json(r) for r in requests], indent=2)


def loads(s: str) -> list[EditRequest]:
    data = json.loads(s)
    if isinstance(data, dict):
        data = [data]
    return [request_from_json(d) for d in data]
