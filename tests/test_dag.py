"""Tests for dependency graph validation."""

import pytest

from runbook.dag import build_graph
from runbook.errors import ArityError, DependencyCycleError, UnknownRecipeError
from runbook.model import StringLiteral, VariableRef
from runbook.parser import parse


def graph_of(text: str):
    return build_graph(parse(text).recipes)


def test_edges_keep_declaration_order() -> None:
    graph = graph_of("release: test build\ntest: build\nbuild:\n")

    assert graph.prerequisites("release") == ["test", "build"]
    assert graph.prerequisites("build") == []
    assert sorted(graph.dependents("build")) == ["release", "test"]


def test_edges_carry_dependency_arguments() -> None:
    graph = graph_of("release: (build 'prod') (tag version)\nbuild env:\ntag v:\n")

    deps = graph.dependencies("release")
    assert [dep.recipe for dep in deps] == ["build", "tag"]
    assert deps[0].arguments == (StringLiteral("prod"),)
    assert deps[1].arguments == (VariableRef("version"),)
    assert deps[0].line == 1


def test_unknown_dependency_lists_known_recipes() -> None:
    with pytest.raises(UnknownRecipeError) as info:
        graph_of("deploy: biuld\nbuild:\n")
    assert "biuld" in info.value.message
    assert "build" in info.value.message
    assert info.value.recipe == "deploy"


def test_two_recipe_cycle_names_both() -> None:
    with pytest.raises(DependencyCycleError) as info:
        graph_of("a: b\nb: a\n")
    assert set(info.value.cycle) == {"a", "b"}
    assert info.value.cycle[0] == info.value.cycle[-1]


def test_self_dependency() -> None:
    with pytest.raises(DependencyCycleError) as info:
        graph_of("a: a\n")
    assert info.value.cycle == ["a", "a"]


def test_longer_cycle_reports_the_path() -> None:
    with pytest.raises(DependencyCycleError) as info:
        graph_of("start: a\na: b\nb: c\nc: a\n")
    assert info.value.cycle == ["a", "b", "c", "a"]
    assert "a -> b -> c -> a" in info.value.message


@pytest.mark.parametrize(
    "text",
    [
        "a: (b)\nb x:\n",
        "a: (b '1' '2')\nb x:\n",
        "a: (b)\nb +xs:\n",
        "a: (b '1' '2' '3')\nb x y='2':\n",
    ],
)
def test_dependency_arity_mismatch(text: str) -> None:
    with pytest.raises(ArityError):
        graph_of(text)


@pytest.mark.parametrize(
    "text",
    [
        "a: (b '1')\nb x:\n",
        "a: b\nb x='1':\n",
        "a: (b '1' '2' '3')\nb x *rest:\n",
        "a: b\nb *rest:\n",
    ],
)
def test_dependency_arity_ok(text: str) -> None:
    graph_of(text)
