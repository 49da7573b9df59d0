# formatter.py
"""
Serialize parsed documents back to recipe-file text.

`parse(format_document(doc))` yields a document equal to `doc`; source
positions and comments other than recipe doc lines are not preserved.
"""
from __future__ import annotations

from typing import List

from .model import (
    Alias,
    Attribute,
    Backtick,
    Call,
    Concatenation,
    Dependency,
    Document,
    Expression,
    Import,
    Interpolation,
    Join,
    Line,
    Namespace,
    Parameter,
    Recipe,
    Setting,
    StringLiteral,
    Text,
    Variable,
    VariableRef,
)

INDENT = "    "


def quote(value: str) -> str:
    if "'" not in value and "\n" not in value and "\r" not in value:
        return f"'{value}'"
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def format_expression(expr: Expression) -> str:
    if isinstance(expr, StringLiteral):
        return quote(expr.value)
    if isinstance(expr, Backtick):
        return f"`{expr.command}`"
    if isinstance(expr, VariableRef):
        return expr.name
    if isinstance(expr, Call):
        return f"{expr.name}({', '.join(format_expression(a) for a in expr.arguments)})"
    if isinstance(expr, (Concatenation, Join)):
        op = "+" if isinstance(expr, Concatenation) else "/"
        rhs = format_expression(expr.rhs)
        # binary operators are left-associative; a nested right side needs parens
        if isinstance(expr.rhs, (Concatenation, Join)):
            rhs = f"({rhs})"
        return f"{format_expression(expr.lhs)} {op} {rhs}"
    raise TypeError(f"not an expression: {expr!r}")


def _format_value(expr: Expression) -> str:
    if isinstance(expr, (StringLiteral, Backtick, VariableRef)):
        return format_expression(expr)
    return f"({format_expression(expr)})"


def format_parameter(param: Parameter) -> str:
    text = ("$" if param.export else "") + param.kind.value + param.name
    if param.default is not None:
        text += "=" + _format_value(param.default)
    return text


def format_dependency(dep: Dependency) -> str:
    if not dep.arguments:
        return dep.recipe
    args = " ".join(format_expression(a) for a in dep.arguments)
    return f"({dep.recipe} {args})"


def format_line(line: Line) -> str:
    parts: List[str] = []
    if line.flip_echo:
        parts.append("@")
    if line.tolerate_error:
        parts.append("-")
    for fragment in line.fragments:
        if isinstance(fragment, Text):
            parts.append(fragment.value.replace("{{", "{{{{").replace("\n", "\n" + INDENT))
        elif isinstance(fragment, Interpolation):
            parts.append("{{ " + format_expression(fragment.expression) + " }}")
    return INDENT + "".join(parts)


def _format_attributes(attributes: tuple[Attribute, ...]) -> str:
    items = [a.name if a.value is None else f"{a.name}: {quote(a.value)}" for a in attributes]
    return "[" + ", ".join(items) + "]"


def format_recipe(recipe: Recipe) -> str:
    lines: List[str] = []
    if recipe.doc:
        lines.append(f"# {recipe.doc}")
    if recipe.attributes:
        lines.append(_format_attributes(recipe.attributes))

    header = ("@" if recipe.quiet else "") + recipe.name
    for param in recipe.parameters:
        header += " " + format_parameter(param)
    header += ":"
    for dep in recipe.dependencies:
        header += " " + format_dependency(dep)
    lines.append(header)

    lines.extend(format_line(line) for line in recipe.body)
    return "\n".join(lines)


def format_import(item: Import) -> str:
    return f"import{'?' if item.optional else ''} {quote(item.path)}"


def format_setting(setting: Setting) -> str:
    value = setting.value
    if value is True:
        return f"set {setting.name}"
    if value is False:
        return f"set {setting.name} := false"
    if isinstance(value, tuple):
        return f"set {setting.name} := [{', '.join(quote(v) for v in value)}]"
    return f"set {setting.name} := {quote(value)}"


def format_variable(variable: Variable) -> str:
    prefix = "export " if variable.export else ""
    return f"{prefix}{variable.name} := {format_expression(variable.expression)}"


def format_alias(alias: Alias) -> str:
    return f"alias {alias.name} := {alias.target}"


def format_document(document: Document) -> str:
    sections: List[str] = []

    head: List[str] = [format_import(i) for i in document.imports]
    head += [format_setting(s) for s in document.settings.values()]
    if head:
        sections.append("\n".join(head))
    if document.variables:
        sections.append("\n".join(format_variable(v) for v in document.variables.values()))
    if document.aliases:
        sections.append("\n".join(format_alias(a) for a in document.aliases.values()))
    sections.extend(format_recipe(r) for r in document.recipes.values())

    return "\n\n".join(sections) + "\n" if sections else ""


def format_namespace(namespace: Namespace) -> str:
    """The merged namespace as a single import-free document."""
    return format_document(
        Document(
            variables=namespace.variables,
            recipes=namespace.recipes,
            aliases=namespace.aliases,
            settings=namespace.settings,
        )
    )
