# parser.py
"""
Recipe-file parser.

    parse(text, path) -> Document

Top-level lines are tokenized one at a time (see lexer.py); every indented
line following a recipe header is body text. The parser is a pure function of
its input: it never touches the filesystem or runs anything.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .constants import FLAG_ATTRIBUTES, SETTING_TYPES, VALUE_ATTRIBUTES
from .errors import (
    DuplicateRecipeError,
    DuplicateSettingError,
    DuplicateVariableError,
    RecipeSyntaxError,
)
from .lexer import Token, TokenKind, tokenize
from .model import (
    Alias,
    Attribute,
    Backtick,
    Call,
    Concatenation,
    Dependency,
    Document,
    Expression,
    Fragment,
    Import,
    Interpolation,
    Join,
    Line,
    Parameter,
    ParameterKind,
    Recipe,
    Setting,
    StringLiteral,
    Text,
    Variable,
    VariableRef,
)


def parse(text: str, path: Optional[Path] = None) -> Document:
    """Parse recipe-file text into a Document. Raises RecipeSyntaxError."""
    return Parser(text, path).parse()


def parse_expression(source: str, *, path: Optional[Path] = None, line: int = 0) -> Expression:
    """Parse a standalone expression (used for `{{ }}` and tests)."""
    cursor = _Cursor(tokenize(source, line=line, path=path), path, line)
    expr = _expression(cursor)
    cursor.expect(TokenKind.EOL)
    return expr


# ----------------------------------------------------------------------
# Token cursor + expression grammar
# ----------------------------------------------------------------------

class _Cursor:
    def __init__(self, tokens: List[Token], path: Optional[Path], line: int):
        self.tokens = tokens
        self.pos = 0
        self.path = path
        self.line = line

    def peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def at(self, *kinds: TokenKind) -> bool:
        return self.peek().kind in kinds

    def next(self) -> Token:
        tok = self.peek()
        if tok.kind is not TokenKind.EOL:
            self.pos += 1
        return tok

    def accept(self, kind: TokenKind) -> Optional[Token]:
        if self.at(kind):
            return self.next()
        return None

    def expect(self, kind: TokenKind, what: Optional[str] = None) -> Token:
        tok = self.peek()
        if tok.kind is not kind:
            raise self.error(f"expected {what or kind.value}, found {tok.describe()}", tok)
        return self.next()

    def error(self, message: str, tok: Optional[Token] = None) -> RecipeSyntaxError:
        tok = tok or self.peek()
        return RecipeSyntaxError(message, path=self.path, line=self.line, column=tok.column)


def _expression(cur: _Cursor) -> Expression:
    lhs = _term(cur)
    while cur.at(TokenKind.PLUS, TokenKind.SLASH):
        op = cur.next()
        rhs = _term(cur)
        lhs = Concatenation(lhs, rhs) if op.kind is TokenKind.PLUS else Join(lhs, rhs)
    return lhs


def _term(cur: _Cursor) -> Expression:
    tok = cur.peek()
    if tok.kind is TokenKind.STRING:
        cur.next()
        return StringLiteral(tok.value or "")
    if tok.kind is TokenKind.BACKTICK:
        cur.next()
        return Backtick(tok.value or "")
    if tok.kind is TokenKind.NAME:
        cur.next()
        if cur.accept(TokenKind.LPAREN):
            args: List[Expression] = []
            if not cur.at(TokenKind.RPAREN):
                args.append(_expression(cur))
                while cur.accept(TokenKind.COMMA):
                    args.append(_expression(cur))
            cur.expect(TokenKind.RPAREN)
            return Call(tok.text, tuple(args))
        return VariableRef(tok.text)
    if tok.kind is TokenKind.LPAREN:
        cur.next()
        inner = _expression(cur)
        cur.expect(TokenKind.RPAREN)
        return inner
    raise cur.error(f"expected expression, found {tok.describe()}", tok)


def _value(cur: _Cursor) -> Expression:
    """Parameter default: a single term, parenthesize anything longer."""
    tok = cur.peek()
    if tok.kind is TokenKind.STRING:
        cur.next()
        return StringLiteral(tok.value or "")
    if tok.kind is TokenKind.BACKTICK:
        cur.next()
        return Backtick(tok.value or "")
    if tok.kind is TokenKind.NAME:
        cur.next()
        return VariableRef(tok.text)
    if tok.kind is TokenKind.LPAREN:
        cur.next()
        inner = _expression(cur)
        cur.expect(TokenKind.RPAREN)
        return inner
    raise cur.error(f"expected default value, found {tok.describe()}", tok)


# ----------------------------------------------------------------------
# Document parser
# ----------------------------------------------------------------------

class Parser:
    def __init__(self, text: str, path: Optional[Path] = None):
        self.lines = text.splitlines()
        self.path = path
        self.index = 0

        self.imports: List[Import] = []
        self.variables: Dict[str, Variable] = {}
        self.recipes: Dict[str, Recipe] = {}
        self.aliases: Dict[str, Alias] = {}
        self.settings: Dict[str, Setting] = {}

        self._doc: Optional[str] = None
        self._attributes: List[Attribute] = []
        self._attributes_line = 0

    def parse(self) -> Document:
        while self.index < len(self.lines):
            raw = self.lines[self.index]
            number = self.index + 1
            self.index += 1

            if not raw.strip():
                self._doc = None
                continue
            if raw[0] in " \t":
                raise RecipeSyntaxError(
                    "unexpected indentation outside a recipe body",
                    path=self.path, line=number, column=1,
                )
            if raw.startswith("#"):
                if not self._attributes:
                    self._doc = raw[1:].strip() or None
                continue

            self._statement(raw, number)

        if self._attributes:
            raise RecipeSyntaxError(
                "attributes must be followed by a recipe",
                path=self.path, line=self._attributes_line,
            )

        return Document(
            imports=tuple(self.imports),
            variables=self.variables,
            recipes=self.recipes,
            aliases=self.aliases,
            settings=self.settings,
            path=self.path,
        )

    # ---- statements ----

    def _statement(self, raw: str, number: int) -> None:
        cur = _Cursor(tokenize(raw, line=number, path=self.path), self.path, number)
        first, second, third = cur.peek(0), cur.peek(1), cur.peek(2)

        if first.kind is TokenKind.LBRACKET:
            self._attribute_line(cur, number)
            return

        if first.kind is TokenKind.NAME:
            word = first.text
            if second.kind is TokenKind.COLON_EQUALS:
                self._no_pending_attributes(first)
                self._assignment(cur, number, export=False)
                self._doc = None
                return
            if word == "import" and second.kind in (TokenKind.STRING, TokenKind.QUESTION):
                self._no_pending_attributes(first)
                self._import(cur, number)
                self._doc = None
                return
            if word == "export" and second.kind is TokenKind.NAME and third.kind is TokenKind.COLON_EQUALS:
                self._no_pending_attributes(first)
                cur.next()
                self._assignment(cur, number, export=True)
                self._doc = None
                return
            if word == "set" and second.kind is TokenKind.NAME and third.kind in (
                TokenKind.COLON_EQUALS,
                TokenKind.EOL,
            ):
                self._no_pending_attributes(first)
                self._setting(cur, number)
                self._doc = None
                return
            if word == "alias" and second.kind is TokenKind.NAME and third.kind is TokenKind.COLON_EQUALS:
                self._no_pending_attributes(first)
                self._alias(cur, number)
                self._doc = None
                return

        if first.kind in (TokenKind.NAME, TokenKind.AT, TokenKind.COLON):
            self._recipe(cur, number)
            return

        if self._attributes:
            raise cur.error("attributes must be followed by a recipe", first)
        raise cur.error(f"unexpected {first.describe()}", first)

    def _no_pending_attributes(self, tok: Token) -> None:
        if self._attributes:
            raise RecipeSyntaxError(
                "attributes must be followed by a recipe",
                path=self.path, line=self._attributes_line, column=tok.column,
            )

    def _assignment(self, cur: _Cursor, number: int, *, export: bool) -> None:
        name = cur.expect(TokenKind.NAME).text
        cur.expect(TokenKind.COLON_EQUALS)
        expr = _expression(cur)
        cur.expect(TokenKind.EOL)
        if name in self.variables:
            raise DuplicateVariableError(
                f"variable '{name}' is defined more than once",
                path=self.path, line=number,
            )
        self.variables[name] = Variable(name, expr, export=export, path=self.path, line=number)

    def _import(self, cur: _Cursor, number: int) -> None:
        cur.expect(TokenKind.NAME)
        optional = cur.accept(TokenKind.QUESTION) is not None
        target = cur.expect(TokenKind.STRING, "import path").value or ""
        cur.expect(TokenKind.EOL)
        if not target:
            raise cur.error("import path must not be empty")
        self.imports.append(Import(target, optional=optional, line=number))

    def _setting(self, cur: _Cursor, number: int) -> None:
        cur.expect(TokenKind.NAME)
        name_tok = cur.expect(TokenKind.NAME, "setting name")
        name = name_tok.text
        if name not in SETTING_TYPES:
            raise cur.error(f"unknown setting '{name}'", name_tok)

        value: object = True
        if cur.accept(TokenKind.COLON_EQUALS):
            tok = cur.peek()
            if tok.kind is TokenKind.NAME and tok.text in ("true", "false"):
                cur.next()
                value = tok.text == "true"
            elif tok.kind is TokenKind.STRING:
                cur.next()
                value = tok.value or ""
            elif tok.kind is TokenKind.LBRACKET:
                cur.next()
                items = [cur.expect(TokenKind.STRING).value or ""]
                while cur.accept(TokenKind.COMMA):
                    if cur.at(TokenKind.RBRACKET):
                        break
                    items.append(cur.expect(TokenKind.STRING).value or "")
                cur.expect(TokenKind.RBRACKET)
                value = tuple(items)
            else:
                raise cur.error(f"expected setting value, found {tok.describe()}", tok)
        cur.expect(TokenKind.EOL)

        if not isinstance(value, SETTING_TYPES[name]):
            raise cur.error(f"setting '{name}' expects a {SETTING_TYPES[name].__name__} value", name_tok)
        if name in self.settings:
            raise DuplicateSettingError(
                f"setting '{name}' is given more than once",
                path=self.path, line=number,
            )
        self.settings[name] = Setting(name, value, path=self.path, line=number)

    def _alias(self, cur: _Cursor, number: int) -> None:
        cur.expect(TokenKind.NAME)
        name = cur.expect(TokenKind.NAME).text
        cur.expect(TokenKind.COLON_EQUALS)
        target = cur.expect(TokenKind.NAME, "recipe name").text
        cur.expect(TokenKind.EOL)
        if name in self.aliases or name in self.recipes:
            raise DuplicateRecipeError(
                f"alias '{name}' collides with an existing recipe or alias",
                path=self.path, line=number,
            )
        self.aliases[name] = Alias(name, target, path=self.path, line=number)

    def _attribute_line(self, cur: _Cursor, number: int) -> None:
        cur.expect(TokenKind.LBRACKET)
        while True:
            name_tok = cur.expect(TokenKind.NAME, "attribute name")
            value: Optional[str] = None
            if cur.accept(TokenKind.COLON):
                value = cur.expect(TokenKind.STRING, "attribute value").value or ""

            name = name_tok.text
            if name in FLAG_ATTRIBUTES:
                if value is not None:
                    raise cur.error(f"attribute '{name}' takes no value", name_tok)
            elif name in VALUE_ATTRIBUTES:
                if value is None:
                    raise cur.error(f"attribute '{name}' requires a value", name_tok)
            else:
                raise cur.error(f"unknown attribute '{name}'", name_tok)
            if any(a.name == name for a in self._attributes):
                raise cur.error(f"attribute '{name}' given more than once", name_tok)

            self._attributes.append(Attribute(name, value))
            if not cur.accept(TokenKind.COMMA):
                break
        cur.expect(TokenKind.RBRACKET)
        cur.expect(TokenKind.EOL)
        if not self._attributes_line:
            self._attributes_line = number

    # ---- recipes ----

    def _recipe(self, cur: _Cursor, number: int) -> None:
        quiet = cur.accept(TokenKind.AT) is not None
        if cur.at(TokenKind.COLON):
            raise cur.error("recipe name must not be empty")
        name = cur.expect(TokenKind.NAME, "recipe name").text

        parameters = self._parameters(cur)
        cur.expect(TokenKind.COLON)
        dependencies = self._dependencies(cur, number)
        cur.expect(TokenKind.EOL)

        if name in self.recipes or name in self.aliases:
            raise DuplicateRecipeError(
                f"recipe '{name}' is defined more than once",
                path=self.path, line=number, recipe=name,
            )

        self.recipes[name] = Recipe(
            name=name,
            parameters=parameters,
            dependencies=dependencies,
            body=self._body(name),
            quiet=quiet,
            attributes=tuple(self._attributes),
            doc=self._doc,
            path=self.path,
            line=number,
        )
        self._attributes = []
        self._attributes_line = 0
        self._doc = None

    def _parameters(self, cur: _Cursor) -> Tuple[Parameter, ...]:
        params: List[Parameter] = []
        seen_default = False

        while not cur.at(TokenKind.COLON, TokenKind.EOL):
            export = cur.accept(TokenKind.DOLLAR) is not None
            kind = ParameterKind.SINGULAR
            if cur.accept(TokenKind.STAR):
                kind = ParameterKind.STAR
            elif cur.accept(TokenKind.PLUS):
                kind = ParameterKind.PLUS
            name_tok = cur.expect(TokenKind.NAME, "parameter name")

            default: Optional[Expression] = None
            if cur.accept(TokenKind.EQUALS):
                default = _value(cur)

            if any(p.name == name_tok.text for p in params):
                raise cur.error(f"duplicate parameter '{name_tok.text}'", name_tok)
            if params and params[-1].variadic:
                raise cur.error(
                    f"variadic parameter '{params[-1].name}' must be the last parameter", name_tok
                )
            if kind is ParameterKind.SINGULAR:
                if default is None and seen_default:
                    raise cur.error(
                        f"parameter '{name_tok.text}' without a default follows a parameter with one",
                        name_tok,
                    )
            seen_default = seen_default or default is not None

            params.append(Parameter(name_tok.text, default, kind, export))

        return tuple(params)

    def _dependencies(self, cur: _Cursor, number: int) -> Tuple[Dependency, ...]:
        deps: List[Dependency] = []
        while not cur.at(TokenKind.EOL):
            if cur.accept(TokenKind.LPAREN):
                name = cur.expect(TokenKind.NAME, "dependency name").text
                args: List[Expression] = []
                while not cur.at(TokenKind.RPAREN):
                    if cur.at(TokenKind.EOL):
                        raise cur.error("unterminated dependency argument list")
                    args.append(_expression(cur))
                cur.expect(TokenKind.RPAREN)
                deps.append(Dependency(name, tuple(args), line=number))
            else:
                name = cur.expect(TokenKind.NAME, "dependency name").text
                deps.append(Dependency(name, line=number))
        return tuple(deps)

    def _body(self, recipe: str) -> Tuple[Line, ...]:
        body: List[Line] = []
        indent: Optional[str] = None

        while self.index < len(self.lines):
            raw = self.lines[self.index]
            if not raw.strip():
                # blank lines only belong to the body when more body follows
                ahead = self.index + 1
                while ahead < len(self.lines) and not self.lines[ahead].strip():
                    ahead += 1
                if ahead < len(self.lines) and self.lines[ahead][:1] in (" ", "\t"):
                    self.index = ahead
                    continue
                break
            if raw[0] not in " \t":
                break

            number = self.index + 1
            if indent is None:
                indent = raw[: len(raw) - len(raw.lstrip(" \t"))]
            text = self._dedent(raw, indent, number, recipe)
            self.index += 1

            # trailing backslash continues the command on the next line
            while text.endswith("\\") and self.index < len(self.lines):
                nxt = self.lines[self.index]
                if not nxt.strip() or nxt[0] not in " \t":
                    break
                text += "\n" + self._dedent(nxt, indent, self.index + 1, recipe)
                self.index += 1

            body.append(self._line(text, number, recipe))

        return tuple(body)

    def _dedent(self, raw: str, indent: str, number: int, recipe: str) -> str:
        if not raw.startswith(indent):
            raise RecipeSyntaxError(
                "inconsistent indentation in recipe body",
                path=self.path, line=number, recipe=recipe, column=1,
            )
        return raw[len(indent):]

    def _line(self, text: str, number: int, recipe: str) -> Line:
        flip_echo = tolerate = False
        column = 1
        while text[:1] in ("@", "-"):
            if text[0] == "@" and not flip_echo:
                flip_echo = True
            elif text[0] == "-" and not tolerate:
                tolerate = True
            else:
                break
            text = text[1:]
            column += 1

        return Line(
            fragments=self._fragments(text, number, recipe, column),
            flip_echo=flip_echo,
            tolerate_error=tolerate,
            number=number,
        )

    def _fragments(self, text: str, number: int, recipe: str, column: int) -> Tuple[Fragment, ...]:
        fragments: List[Fragment] = []
        buf: List[str] = []
        i = 0
        while i < len(text):
            if text.startswith("{{{{", i):
                buf.append("{{")
                i += 4
                continue
            if text.startswith("{{", i):
                end = text.find("}}", i + 2)
                if end == -1:
                    raise RecipeSyntaxError(
                        "unterminated interpolation",
                        path=self.path, line=number, column=column + i, recipe=recipe,
                    )
                source = text[i + 2:end]
                if not source.strip():
                    raise RecipeSyntaxError(
                        "empty interpolation",
                        path=self.path, line=number, column=column + i, recipe=recipe,
                    )
                cur = _Cursor(
                    tokenize(source, line=number, path=self.path, column_offset=column + i + 1),
                    self.path,
                    number,
                )
                expr = _expression(cur)
                cur.expect(TokenKind.EOL, "'}}'")
                if buf:
                    fragments.append(Text("".join(buf)))
                    buf = []
                fragments.append(Interpolation(expr))
                i = end + 2
                continue
            buf.append(text[i])
            i += 1
        if buf:
            fragments.append(Text("".join(buf)))
        return tuple(fragments)
