# lexer.py
"""
Tokenizer for single recipe-file lines.

Only top-level statements and `{{ }}` interpolations are tokenized; recipe
body text is never passed through here.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import RecipeSyntaxError

NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")

ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    '"': '"',
    "\\": "\\",
}


class TokenKind(enum.Enum):
    NAME = "name"
    STRING = "string"
    BACKTICK = "backtick"
    COLON_EQUALS = "':='"
    COLON = "':'"
    EQUALS = "'='"
    PLUS = "'+'"
    SLASH = "'/'"
    STAR = "'*'"
    DOLLAR = "'$'"
    AT = "'@'"
    QUESTION = "'?'"
    COMMA = "','"
    LPAREN = "'('"
    RPAREN = "')'"
    LBRACKET = "'['"
    RBRACKET = "']'"
    EOL = "end of line"


SINGLE_CHAR = {
    ":": TokenKind.COLON,
    "=": TokenKind.EQUALS,
    "+": TokenKind.PLUS,
    "/": TokenKind.SLASH,
    "*": TokenKind.STAR,
    "$": TokenKind.DOLLAR,
    "@": TokenKind.AT,
    "?": TokenKind.QUESTION,
    ",": TokenKind.COMMA,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    column: int              # 1-based
    value: Optional[str] = None  # unescaped content of strings / backticks

    def describe(self) -> str:
        if self.kind is TokenKind.EOL:
            return "end of line"
        return repr(self.text)


def tokenize(
    source: str,
    *,
    line: int = 0,
    path: Optional[Path] = None,
    column_offset: int = 0,
) -> List[Token]:
    """
    Split one line into tokens, always ending with an EOL token.

    A `#` outside a string starts a comment that runs to the end of the line.
    """
    tokens: List[Token] = []
    i = 0
    n = len(source)

    def fail(message: str, at: int) -> RecipeSyntaxError:
        return RecipeSyntaxError(message, path=path, line=line, column=column_offset + at + 1)

    while i < n:
        ch = source[i]
        col = column_offset + i + 1

        if ch in " \t\r":
            i += 1
            continue
        if ch == "#":
            break

        if ch == ":" and source.startswith(":=", i):
            tokens.append(Token(TokenKind.COLON_EQUALS, ":=", col))
            i += 2
            continue

        if ch in SINGLE_CHAR:
            tokens.append(Token(SINGLE_CHAR[ch], ch, col))
            i += 1
            continue

        if ch == "'":
            end = source.find("'", i + 1)
            if end == -1:
                raise fail("unterminated string", i)
            tokens.append(Token(TokenKind.STRING, source[i:end + 1], col, source[i + 1:end]))
            i = end + 1
            continue

        if ch == '"':
            value, end = _cooked_string(source, i, fail)
            tokens.append(Token(TokenKind.STRING, source[i:end + 1], col, value))
            i = end + 1
            continue

        if ch == "`":
            end = source.find("`", i + 1)
            if end == -1:
                raise fail("unterminated backtick", i)
            tokens.append(Token(TokenKind.BACKTICK, source[i:end + 1], col, source[i + 1:end]))
            i = end + 1
            continue

        m = NAME_RE.match(source, i)
        if m:
            tokens.append(Token(TokenKind.NAME, m.group(0), col))
            i = m.end()
            continue

        raise fail(f"unexpected character {ch!r}", i)

    tokens.append(Token(TokenKind.EOL, "", column_offset + n + 1))
    return tokens


def _cooked_string(source: str, start: int, fail):
    out: List[str] = []
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            if i + 1 >= len(source):
                break
            nxt = source[i + 1]
            if nxt not in ESCAPES:
                raise fail(f"unknown escape sequence '\\{nxt}'", i)
            out.append(ESCAPES[nxt])
            i += 2
            continue
        if ch == '"':
            return "".join(out), i
        out.append(ch)
        i += 1
    raise fail("unterminated string", start)
