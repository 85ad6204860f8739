"""Tokenizer for the canonical TLA+ subset.

Whitespace and comments are trivia: they never become tokens, but every
token keeps its exact offsets, line and column so the parser can apply the
layout rules (junction alignment) and the transforms can splice text at
token boundaries without disturbing anything else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .errors import TlaSyntaxError


class TokenKind(Enum):
    IDENT = "ident"
    NUMBER = "number"
    STRING = "string"
    KEYWORD = "keyword"
    OP = "op"
    PUNCT = "punct"
    FAIRNESS = "fairness"
    SEPARATOR = "separator"
    FOOTER = "footer"
    EOF = "eof"


KEYWORDS: frozenset[str] = frozenset(
    {
        "MODULE", "EXTENDS", "CONSTANT", "CONSTANTS", "VARIABLE", "VARIABLES",
        "ASSUME", "ASSUMPTION", "AXIOM", "THEOREM", "LEMMA", "PROPOSITION",
        "COROLLARY", "INSTANCE", "WITH", "LOCAL", "LET", "IN", "IF", "THEN",
        "ELSE", "CASE", "OTHER", "CHOOSE", "EXCEPT", "UNCHANGED", "ENABLED",
        "SUBSET", "UNION", "DOMAIN", "LAMBDA", "RECURSIVE",
    }
)

# Longest first: the scanner takes the first alternative that matches.
_SYMBOLS: tuple[str, ...] = (
    "-+->", "<=>", "|->", "...", "==", "=>", "=<", "<=", ">=", "/=", "/\\",
    "\\/", "~>", "->", "<-", "..", ":>", "@@", "++", "[]", "<>", "<<", ">>",
    "::", "|-", "=", "#", "<", ">", "+", "-", "*", "/", "^", "%", "~", "'",
    "(", ")", "[", "]", "{", "}", ",", ":", "!", ".", "@", "|", "&", "$",
)

_PUNCT: frozenset[str] = frozenset(
    {"(", ")", "[", "]", "{", "}", "<<", ">>", ",", ":", "!", ".", "@", "::"}
)

_IDENT_RE = re.compile(r"[A-Za-z0-9_]*[A-Za-z][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_BACKSLASH_OP_RE = re.compile(r"\\[A-Za-z]+")
_SEPARATOR_RE = re.compile(r"-{4,}")
_FOOTER_RE = re.compile(r"={4,}")


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int
    line: int
    col: int
    first_on_line: bool

    def is_(self, text: str) -> bool:
        return self.text == text and self.kind not in (TokenKind.STRING, TokenKind.EOF)


def _skip_block_comment(
    text: str, pos: int, line: int, base_offset: int = 0
) -> tuple[int, int]:
    """Skip a (possibly nested) ``(* ... *)`` comment starting at ``pos``."""
    depth = 0
    n = len(text)
    start = pos
    while pos < n:
        if text.startswith("(*", pos):
            depth += 1
            pos += 2
        elif text.startswith("*)", pos):
            depth -= 1
            pos += 2
            if depth == 0:
                return pos, line
        else:
            if text[pos] == "\n":
                line += 1
            pos += 1
    raise TlaSyntaxError(
        "unterminated block comment", base_offset + start, line, 0, expected="'*)'"
    )


def tokenize(text: str, *, first_line: int = 1, base_offset: int = 0) -> list[Token]:
    """Split ``text`` into tokens, ending with a single EOF token.

    ``first_line`` and ``base_offset`` place ``text`` inside a larger module
    so error positions point at the module, while token offsets stay
    relative to ``text``.
    """
    tokens: list[Token] = []
    pos = 0
    line = first_line
    line_start = 0
    last_token_line = first_line - 1
    n = len(text)

    def emit(kind: TokenKind, end: int) -> None:
        nonlocal last_token_line
        tokens.append(
            Token(
                kind=kind,
                text=text[pos:end],
                start=pos,
                end=end,
                line=line,
                col=pos - line_start,
                first_on_line=last_token_line != line,
            )
        )
        last_token_line = line

    while pos < n:
        ch = text[pos]
        if ch == "\n":
            line += 1
            pos += 1
            line_start = pos
            continue
        if ch in " \t\r\f":
            pos += 1
            continue
        if text.startswith("\\*", pos):
            nl = text.find("\n", pos)
            pos = n if nl == -1 else nl
            continue
        if text.startswith("(*", pos):
            new_pos, new_line = _skip_block_comment(text, pos, line, base_offset)
            if new_line != line:
                line_start = text.rfind("\n", pos, new_pos) + 1
            pos, line = new_pos, new_line
            continue
        if ch == '"':
            end = pos + 1
            while end < n and text[end] != '"':
                if text[end] == "\\":
                    end += 1
                if end < n and text[end] == "\n":
                    raise TlaSyntaxError(
                        "unterminated string", base_offset + pos, line, pos - line_start, '\'"\''
                    )
                end += 1
            if end >= n:
                raise TlaSyntaxError(
                    "unterminated string", base_offset + pos, line, pos - line_start, "'\"'"
                )
            emit(TokenKind.STRING, end + 1)
            pos = end + 1
            continue
        if m := _SEPARATOR_RE.match(text, pos):
            emit(TokenKind.SEPARATOR, m.end())
            pos = m.end()
            continue
        if m := _FOOTER_RE.match(text, pos):
            emit(TokenKind.FOOTER, m.end())
            pos = m.end()
            continue
        # ``]_vars`` and ``>>_vars``: the underscore introduces a subscript.
        if (
            ch == "_"
            and tokens
            and tokens[-1].end == pos
            and tokens[-1].text in ("]", ">>")
        ):
            emit(TokenKind.PUNCT, pos + 1)
            pos += 1
            continue
        if m := _IDENT_RE.match(text, pos):
            word = m.group()
            if word[:3] in ("WF_", "SF_"):
                emit(TokenKind.FAIRNESS, pos + 3)
                pos += 3
                continue
            kind = TokenKind.KEYWORD if word in KEYWORDS else TokenKind.IDENT
            emit(kind, m.end())
            pos = m.end()
            continue
        if m := _NUMBER_RE.match(text, pos):
            emit(TokenKind.NUMBER, m.end())
            pos = m.end()
            continue
        if m := _BACKSLASH_OP_RE.match(text, pos):
            emit(TokenKind.OP, m.end())
            pos = m.end()
            continue
        for sym in _SYMBOLS:
            if text.startswith(sym, pos):
                emit(TokenKind.PUNCT if sym in _PUNCT else TokenKind.OP, pos + len(sym))
                pos += len(sym)
                break
        else:
            if ch == "\\":
                emit(TokenKind.OP, pos + 1)
                pos += 1
                continue
            raise TlaSyntaxError(
                f"unexpected character {ch!r}", base_offset + pos, line, pos - line_start
            )

    tokens.append(
        Token(TokenKind.EOF, "", n, n, line, pos - line_start, True)
    )
    return tokens
