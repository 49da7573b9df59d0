# loader.py
"""
Recipe-file discovery and import resolution.

    resolve(root_path) -> Namespace

Imports are followed depth-first from the root. Each file is parsed once and
cached by its resolved path, so the same file reached through two import paths
(a diamond) is merged once. A file that imports itself, directly or not, is an
ImportCycleError. After traversal every document is merged into one flat
namespace; the same name defined in two different files is fatal.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from .constants import DEFAULT_FILENAMES
from .errors import (
    ConfigurationError,
    DuplicateRecipeError,
    DuplicateSettingError,
    DuplicateVariableError,
    ImportCycleError,
    MissingImportError,
)
from .model import Document, Namespace
from .parser import parse

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------

def find_runbook(start: str | Path = ".") -> Path:
    """
    Find the recipe file for `start`: the nearest directory, walking upward,
    containing one of DEFAULT_FILENAMES.

    Raises:
        ConfigurationError: if no file is found, or one directory holds more
        than one candidate.
    """
    start_p = Path(start).expanduser().resolve()
    for directory in [start_p, *start_p.parents]:
        try:
            entries = set(os.listdir(directory))
        except OSError:
            continue
        found = [directory / name for name in DEFAULT_FILENAMES if name in entries]
        found = [p for p in found if p.is_file()]
        if len(found) > 1:
            names = ", ".join(p.name for p in found)
            raise ConfigurationError(
                f"multiple recipe files found in {directory}: {names}; pass --file to pick one"
            )
        if found:
            return found[0]

    raise ConfigurationError(
        f"no recipe file found in {start_p} or any parent directory "
        f"(looked for: {', '.join(DEFAULT_FILENAMES)})"
    )


def load_document(path: Path) -> Document:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read recipe file: {e}", path=path) from e
    except UnicodeDecodeError as e:
        raise ConfigurationError(
            f"recipe file is not valid UTF-8 (byte offset {e.start})", path=path
        ) from e
    return parse(text, path)


# ----------------------------------------------------------------------
# Import resolution
# ----------------------------------------------------------------------

class ImportResolver:
    def __init__(self) -> None:
        self._documents: Dict[Path, Document] = {}
        self._order: List[Path] = []

    def resolve(self, root_path: str | Path) -> Namespace:
        root = Path(root_path).expanduser().resolve()
        if not root.is_file():
            raise ConfigurationError(f"recipe file not found: {root}")

        self._visit(root, [])

        namespace = Namespace(root=root, default_recipe=self._documents[root].first_recipe)
        for path in self._order:
            self._merge(namespace, self._documents[path])

        logger.debug(
            "resolved %d file(s): %d recipe(s), %d variable(s)",
            len(self._order), len(namespace.recipes), len(namespace.variables),
        )
        return namespace

    def _visit(self, path: Path, stack: List[Path]) -> None:
        if path in stack:
            chain = stack[stack.index(path):] + [path]
            raise ImportCycleError(
                "import cycle: " + " -> ".join(str(p) for p in chain),
                path=stack[-1] if stack else path,
                chain=chain,
            )
        if path in self._documents:
            logger.debug("already loaded %s", path)
            return

        document = load_document(path)
        self._documents[path] = document
        self._order.append(path)

        for item in document.imports:
            target = (path.parent / Path(item.path).expanduser()).resolve()
            if not target.is_file():
                if item.optional:
                    logger.debug("skipping optional import %s", target)
                    continue
                raise MissingImportError(
                    f"imported file not found: {item.path}",
                    path=path,
                    line=item.line,
                )
            self._visit(target, stack + [path])

    def _merge(self, namespace: Namespace, document: Document) -> None:
        for name, recipe in document.recipes.items():
            other = namespace.recipes.get(name) or namespace.aliases.get(name)
            if other is not None:
                raise DuplicateRecipeError(
                    f"recipe '{name}' is defined in both {other.path} and {recipe.path}",
                    path=recipe.path,
                    line=recipe.line,
                    recipe=name,
                )
            namespace.recipes[name] = recipe

        for name, alias in document.aliases.items():
            other = namespace.recipes.get(name) or namespace.aliases.get(name)
            if other is not None:
                raise DuplicateRecipeError(
                    f"alias '{name}' collides with a name defined in {other.path}",
                    path=alias.path,
                    line=alias.line,
                )
            namespace.aliases[name] = alias

        for name, variable in document.variables.items():
            other = namespace.variables.get(name)
            if other is not None:
                raise DuplicateVariableError(
                    f"variable '{name}' is defined in both {other.path} and {variable.path}",
                    path=variable.path,
                    line=variable.line,
                )
            namespace.variables[name] = variable

        for name, setting in document.settings.items():
            other = namespace.settings.get(name)
            if other is not None and other.value != setting.value:
                raise DuplicateSettingError(
                    f"setting '{name}' has conflicting values in {other.path} and {setting.path}",
                    path=setting.path,
                    line=setting.line,
                )
            namespace.settings.setdefault(name, setting)


def resolve(root_path: str | Path) -> Namespace:
    return ImportResolver().resolve(root_path)


def load(path: Optional[str | Path] = None, *, start: str | Path = ".") -> Namespace:
    """Resolve `path`, or the discovered recipe file when no path is given."""
    return resolve(path if path is not None else find_runbook(start))
