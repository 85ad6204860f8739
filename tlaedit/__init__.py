"""tlaedit: structural refactoring for TLA+ state-machine specifications."""

from .syntax import (
    ConstantBlock,
    Declaration,
    Definition,
    Extends,
    FairnessClause,
    Invariant,
    Module,
    ModuleFooter,
    ModuleHeader,
    NextRelation,
    Opaque,
    VariableBlock,
)
from .parser import parse, parse_expression
from .render import render
from .config import DEFAULT_CONFIG, EngineConfig
from .catalog import Catalog
from .effects import BranchEffect, branch_effects
from .validate import Severity, ValidationResult, Violation, validate
from .add_variable import add_variable
from .split_action import split_action
from .rewrite import TransformOutcome
from .edits import AddVariable, EditRequest, SplitAction, apply_edit, apply_edits
from .serialization import dumps, loads
from .errors import (
    AmbiguousName,
    CollisionUnresolvable,
    ConsistencyError,
    DuplicateName,
    EditError,
    ErrorKind,
    MissingType,
    NotFound,
    NotSplittable,
    TlaSyntaxError,
)
from .result import Ok, Err, Result

__all__ = [
    # Syntax
    "ConstantBlock", "Declaration", "Definition", "Extends", "FairnessClause",
    "Invariant", "Module", "ModuleFooter", "ModuleHeader", "NextRelation",
    "Opaque", "VariableBlock",
    # Parse / render
    "parse", "parse_expression", "render",
    # Analysis
    "DEFAULT_CONFIG", "EngineConfig", "Catalog", "BranchEffect", "branch_effects",
    "Severity", "ValidationResult", "Violation", "validate",
    # Transforms
    "add_variable", "split_action", "TransformOutcome",
    "AddVariable", "EditRequest", "SplitAction", "apply_edit", "apply_edits",
    # Serialization
    "dumps", "loads",
    # Errors
    "AmbiguousName", "CollisionUnresolvable", "ConsistencyError", "DuplicateName",
    "EditError", "ErrorKind", "MissingType", "NotFound", "NotSplittable",
    "TlaSyntaxError",
    # Result
    "Ok", "Err", "Result",
]
