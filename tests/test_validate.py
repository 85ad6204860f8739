"""Coverage invariant and location checks."""

from __future__ import annotations

import pytest

from tlaedit import ConsistencyError, Err, Severity, add_variable, parse, validate


def _module(actions: str, *, type_ok: str = "") -> str:
    return (
        "---- MODULE V ----\n"
        "EXTENDS Naturals\n\n"
        "VARIABLES pc, x, y\n\n"
        "vars == <<pc, x, y>>\n\n"
        f"{type_ok}"
        "Init == pc = \"a\" /\\ x = 0 /\\ y = 0\n\n"
        f"{actions}"
        "====\n"
    )


def _checks(text: str) -> list[str]:
    return [v.check for v in validate(parse(text)).violations]


def test_consistent_module() -> None:
    text = _module("Go == pc = \"a\" /\\ pc' = \"b\" /\\ UNCHANGED <<x, y>>\n")
    result = validate(parse(text))
    assert result.ok
    assert result.module_name == "V"


def test_missing_variable() -> None:
    text = _module("Go == pc = \"a\" /\\ pc' = \"b\" /\\ UNCHANGED x\n")
    result = validate(parse(text))
    assert not result.ok
    (error,) = result.errors
    assert error.check == "missing_variable"
    assert error.action == "Go"
    assert "'y'" in error.message


def test_primed_and_unchanged() -> None:
    text = _module("Go == pc' = \"b\" /\\ x' = 1 /\\ UNCHANGED <<x, y>>\n")
    assert _checks(text) == ["primed_and_unchanged"]


def test_duplicate_assignment() -> None:
    text = _module("Go == pc' = \"b\" /\\ x' = 1 /\\ x' = 2 /\\ UNCHANGED y\n")
    assert _checks(text) == ["duplicate_effect"]


def test_duplicate_unchanged() -> None:
    text = _module("Go == pc' = \"b\" /\\ UNCHANGED <<x, y>> /\\ UNCHANGED y\n")
    assert _checks(text) == ["duplicate_effect"]


def test_undeclared_variable() -> None:
    text = _module("Go == pc' = \"b\" /\\ UNCHANGED <<x, y, w>>\n")
    assert _checks(text) == ["undeclared_variable"]


def test_state_tuple_covers_everything() -> None:
    text = _module("Stay == pc = \"a\" /\\ UNCHANGED vars\n")
    assert validate(parse(text)).ok


def test_each_branch_checked() -> None:
    text = _module(
        "Go ==\n"
        "    /\\ pc' = \"b\"\n"
        "    /\\ \\/ x' = 1 /\\ UNCHANGED y\n"
        "       \\/ y' = 1\n"
    )
    result = validate(parse(text))
    (error,) = result.errors
    assert error.check == "missing_variable"
    assert error.path == "branch 2"


class TestLocations:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        type_ok = "TypeOK == pc \\in {\"a\", \"b\", \"c\"} /\\ x \\in Nat /\\ y \\in Nat\n\n"
        self.text = _module(
            "Go == pc = \"a\" /\\ pc' = \"b\" /\\ UNCHANGED <<x, y>>\n\n"
            "Jump == pc = \"b\" /\\ pc' = \"z\" /\\ UNCHANGED <<x, y>>\n",
            type_ok=type_ok,
        )
        self.result = validate(parse(self.text))

    def test_undeclared_location(self) -> None:
        (error,) = self.result.errors
        assert error.check == "undeclared_location"
        assert error.action == "Jump"
        assert '"z"' in error.message

    def test_unreferenced_location_is_warning(self) -> None:
        (warning,) = self.result.warnings
        assert warning.check == "unreferenced_location"
        assert warning.severity == Severity.WARNING

    def test_errors_sorted_first(self) -> None:
        severities = [v.severity for v in self.result.violations]
        assert severities == [Severity.ERROR, Severity.WARNING]


def test_transform_refuses_inconsistent_result() -> None:
    text = _module("Go == pc = \"a\" /\\ pc' = \"b\" /\\ UNCHANGED x\n")
    module = parse(text)
    result = add_variable(module, "n", "0")
    assert isinstance(result, Err)
    assert isinstance(result.error, ConsistencyError)
    assert result.error.original is module
    assert any(v.check == "missing_variable" for v in result.error.violations)
