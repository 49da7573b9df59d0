# dag.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from .errors import ArityError, DependencyCycleError, UnknownRecipeError
from .model import Dependency, Recipe

WHITE, GRAY, BLACK = 0, 1, 2


@dataclass
class Graph:
    """
    Dependency graph between recipes.

    edges[name] lists the dependencies of `name` in the order they are
    declared, argument expressions included: each must run before `name`.
    """
    recipes: Dict[str, Recipe]
    edges: Dict[str, List[Dependency]] = field(default_factory=dict)

    def dependencies(self, name: str) -> List[Dependency]:
        return self.edges.get(name, [])

    def prerequisites(self, name: str) -> List[str]:
        return [dep.recipe for dep in self.dependencies(name)]

    def dependents(self, name: str) -> List[str]:
        return [n for n in self.edges if name in self.prerequisites(n)]


def build_graph(recipes: Mapping[str, Recipe]) -> Graph:
    """
    Build and validate the dependency graph.

    Requires:
      - every dependency names a recipe in `recipes`
      - every dependency passes an argument count its prerequisite accepts
      - no cycles

    Raises:
      UnknownRecipeError, ArityError, DependencyCycleError
    """
    graph = Graph(recipes=dict(recipes))

    for recipe in recipes.values():
        for dep in recipe.dependencies:
            target = recipes.get(dep.recipe)
            if target is None:
                raise UnknownRecipeError(
                    f"recipe '{recipe.name}' depends on unknown recipe '{dep.recipe}'. "
                    f"Known recipes: {sorted(recipes)}",
                    path=recipe.path,
                    line=dep.line or recipe.line,
                    recipe=recipe.name,
                )
            _check_arity(recipe, target, len(dep.arguments), dep.line or recipe.line)

        graph.edges[recipe.name] = list(recipe.dependencies)

    _check_acyclic(graph)
    return graph


def _check_arity(recipe: Recipe, target: Recipe, count: int, line: int) -> None:
    low, high = target.min_arguments(), target.max_arguments()
    if count < low or (high is not None and count > high):
        if high is None:
            expected = f"at least {low}"
        elif low == high:
            expected = str(low)
        else:
            expected = f"{low} to {high}"
        raise ArityError(
            f"dependency '{target.name}' of '{recipe.name}' got {count} argument(s), expected {expected}",
            path=recipe.path,
            line=line,
            recipe=recipe.name,
        )


def _check_acyclic(graph: Graph) -> None:
    """White/gray/black DFS; a back edge to a gray node closes a cycle."""
    color: Dict[str, int] = {name: WHITE for name in graph.edges}
    stack: List[str] = []

    def visit(name: str) -> None:
        color[name] = GRAY
        stack.append(name)
        for dep in graph.prerequisites(name):
            if color[dep] == GRAY:
                cycle = stack[stack.index(dep):] + [dep]
                recipe = graph.recipes[name]
                raise DependencyCycleError(
                    "dependency cycle: " + " -> ".join(cycle),
                    path=recipe.path,
                    line=recipe.line,
                    recipe=name,
                    cycle=cycle,
                )
            if color[dep] == WHITE:
                visit(dep)
        stack.pop()
        color[name] = BLACK

    for name in graph.edges:
        if color[name] == WHITE:
            visit(name)
