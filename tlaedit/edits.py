"""Edit requests and their dispatch.

An edit script is a list of requests applied in order; each request sees
the module produced by the one before it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .add_variable import add_variable
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import EditError
from .result import Err, Ok, Result
from .rewrite import TransformOutcome
from .split_action import split_action
from .syntax import Module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddVariable:
    name: str
    init_expr: str
    type_expr: str | None = None


@dataclass(frozen=True)
class SplitAction:
    action_name: str
    first_half: frozenset[str] = field(default_factory=frozenset)
    new_name: str | None = None
    new_location: str | None = None


EditRequest = AddVariable | SplitAction


def describe(request: EditRequest) -> str:
    match request:
        case AddVariable(name=name):
            return f"add variable {name}"
        case SplitAction(action_name=action):
            return f"split action {action}"
    raise TypeError(f"Unknown edit request: {type(request)}")


def apply_edit(
    module: Module, request: EditRequest, config: EngineConfig = DEFAULT_CONFIG
) -> Result[TransformOutcome, EditError]:
    match request:
        case AddVariable(name, init_expr, type_expr):
            return add_variable(module, name, init_expr, type_expr, config)
        case SplitAction(action_name, first_half, new_name, new_location):
            return split_action(module, action_name, first_half, new_name, new_location, config)
    raise TypeError(f"Unknown edit request: {type(request)}")


def apply_edits(
    module: Module,
    requests: Iterable[EditRequest],
    config: EngineConfig = DEFAULT_CONFIG,
) -> Result[list[TransformOutcome], EditError]:
    """Apply ``requests`` in order, stopping at the first failure.

    On failure nothing is returned but the error: the caller still holds
    the input module.
    """
    outcomes: list[TransformOutcome] = []
    current = module
    for i, request in enumerate(requests):
        match apply_edit(current, request, config):
            case Ok(outcome):
                logger.debug("edit %d (%s) touched %s", i, describe(request), ", ".join(outcome.touched))
                outcomes.append(outcome)
                current = outcome.module
            case Err(e):
                logger.warning("edit %d (%s) failed: %s", i, describe(request), e)
                return Err(e)
    return Ok(outcomes)
