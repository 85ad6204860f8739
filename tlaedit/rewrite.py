"""Copy-on-write editing session over a module.

A transform records text splices against the declarations it touches and
new segments to insert after them; :meth:`Rewriter.build` applies them,
re-parses only the touched segments and returns a new :class:`Module`
sharing every other declaration with the input.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .catalog import Catalog
from .errors import ConsistencyError
from .parser import parse_declaration
from .render import Splice, apply_splices
from .syntax import NAMED_DEFINITION_TYPES, Declaration, Module
from .validate import Violation, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransformOutcome:
    """A successful edit: the new module, its catalog and what changed."""

    module: Module
    catalog: Catalog
    touched: tuple[str, ...]
    warnings: tuple[Violation, ...] = ()
    renames: Mapping[str, str] = field(default_factory=dict)


def _label(decl: Declaration) -> str:
    if isinstance(decl, NAMED_DEFINITION_TYPES):
        return decl.name
    return type(decl).__name__


class Rewriter:
    def __init__(self, module: Module, catalog: Catalog) -> None:
        self.module = module
        self.catalog = catalog
        self._splices: dict[int, list[Splice]] = defaultdict(list)
        self._inserted: dict[int, list[str]] = defaultdict(list)

    def edit(self, decl: Declaration, splices: Splice | Iterable[Splice]) -> None:
        index = self.module.index_of(decl)
        if isinstance(splices, Splice):
            self._splices[index].append(splices)
        else:
            self._splices[index].extend(splices)

    def insert_after(self, decl: Declaration, text: str) -> None:
        self._inserted[self.module.index_of(decl)].append(text)

    def touched(self) -> tuple[str, ...]:
        labels: list[str] = []
        for i in sorted(set(self._splices) | set(self._inserted)):
            labels.append(_label(self.module.declarations[i]))
        return tuple(labels)

    def build(self) -> Module:
        offsets: list[int] = []
        pos = 0
        for decl in self.module.declarations:
            offsets.append(pos)
            pos += len(decl.text)

        config = self.catalog.config
        replacements: dict[int, tuple[Declaration, ...]] = {}
        for i in sorted(set(self._splices) | set(self._inserted)):
            decl = self.module.declarations[i]
            text = decl.text
            new_decl = decl
            if i in self._splices:
                text = apply_splices(text, self._splices[i])
                new_decl = parse_declaration(text, config, base_offset=offsets[i])
            inserted = tuple(
                parse_declaration(extra, config, base_offset=offsets[i] + len(text))
                for extra in self._inserted.get(i, ())
            )
            replacements[i] = (new_decl, *inserted)
        return self.module.replace(replacements)

    def finish(
        self,
        original: Module,
        *,
        renames: Mapping[str, str] | None = None,
        touched: tuple[str, ...] = (),
    ) -> TransformOutcome:
        """Build, validate and package the edited module.

        Raises :class:`ConsistencyError` when the result breaks the coverage
        invariant; ``original`` is the module handed back in that case.
        """
        module = self.build()
        catalog = Catalog.from_module(module, self.catalog.config)
        result = validate(module, catalog=catalog)
        if not result.ok:
            logger.warning(
                "edit of %s rejected: %d violations", module.name, len(result.errors)
            )
            raise ConsistencyError(
                f"edited module {module.name} fails validation", result.violations, original
            )
        return TransformOutcome(
            module,
            catalog,
            touched or self.touched(),
            result.warnings,
            dict(renames or {}),
        )
