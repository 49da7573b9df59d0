"""Tests for planning, binding, interpolation and invocation."""

import os

import pytest

from runbook.errors import (
    ArityError,
    ConfigurationError,
    DependencyCycleError,
    MissingArgumentError,
    UnknownRecipeError,
    UnresolvedReferenceError,
)
from runbook.model import RunState
from runbook.runner import Runner, run_recipe
from runbook.shell import Shell
from runbook.ui.console import Console

from conftest import RecordingShell

GREET = """
greeting := "hi"

greet name='world':
    echo {{greeting}} {{name}}
"""


def test_default_argument(runner, shell) -> None:
    result = runner(GREET).run("greet")

    assert result.state is RunState.COMPLETED
    assert result.exit_code == 0
    assert shell.commands == ["echo hi world"]


def test_positional_argument(runner, shell) -> None:
    runner(GREET).run("greet", ["there"])
    assert shell.commands == ["echo hi there"]


def test_first_recipe_is_the_default(runner, shell) -> None:
    runner("first:\n    echo 1\nsecond:\n    echo 2\n").run()
    assert shell.commands == ["echo 1"]


def test_alias_runs_its_target(runner, shell) -> None:
    runner("alias b := build\nbuild:\n    make\n").run("b")
    assert shell.commands == ["make"]


def test_dependencies_run_first(runner, shell) -> None:
    r = runner(
        """
        b: a
            echo b
        a:
            echo a1
            echo a2
        """
    )
    result = r.run("b")
    assert shell.commands == ["echo a1", "echo a2", "echo b"]
    assert result.executed == shell.commands


def test_failure_stops_the_run(namespace) -> None:
    shell = RecordingShell(statuses={"false": 1})
    r = Runner(
        namespace("b: a\n    echo b\na:\n    false\n    echo after\n"),
        shell=shell,
        console=Console(),
    )

    result = r.run("b")

    assert result.state is RunState.FAILED
    assert result.exit_code == 1
    assert result.failure.recipe == "a"
    assert result.failure.command == "false"
    assert shell.commands == ["false"]


def test_exit_code_of_the_failed_command_is_kept(namespace) -> None:
    shell = RecordingShell(statuses={"exit 7": 7})
    r = Runner(namespace("x:\n    exit 7\n"), shell=shell, console=Console())
    assert r.run("x").exit_code == 7


def test_missing_argument_runs_nothing(runner, shell) -> None:
    r = runner("deploy env: build\n    echo deploy {{env}}\nbuild:\n    echo build\n")
    with pytest.raises(MissingArgumentError) as info:
        r.run("deploy")
    assert info.value.recipe == "deploy"
    assert shell.commands == []


def test_too_many_arguments(runner, shell) -> None:
    with pytest.raises(ArityError, match="at most 1"):
        runner(GREET).run("greet", ["a", "b"])
    assert shell.commands == []


def test_unknown_target(runner) -> None:
    with pytest.raises(UnknownRecipeError, match="Known recipes"):
        runner(GREET).run("gret")


def test_configuration_errors_surface_before_running(runner, shell) -> None:
    with pytest.raises(DependencyCycleError):
        runner("ok:\n    echo ok\na: b\nb: a\n")
    with pytest.raises(UnresolvedReferenceError):
        runner("ok:\n    echo ok\nbad:\n    echo {{ nope }}\n")
    assert shell.commands == []


def test_star_parameter_takes_all_remaining_values(runner, shell) -> None:
    r = runner("run *args:\n    cargo run -- {{args}}\n")
    r.run("run", ["--release", "-v"])
    r.run("run")
    assert shell.commands == ["cargo run -- --release -v", "cargo run -- "]


def test_plus_parameter_needs_one_value(runner, shell) -> None:
    r = runner("test first +files:\n    pytest {{first}} {{files}}\n")
    with pytest.raises(MissingArgumentError):
        r.run("test", ["a"])
    r.run("test", ["a", "b", "c"])
    assert shell.commands == ["pytest a b c"]


def test_default_may_reference_earlier_parameter_and_variables(runner, shell) -> None:
    r = runner("v := 'x'\nbuild a b=(a + '-' + v):\n    echo {{b}}\n")
    r.run("build", ["one"])
    assert shell.commands == ["echo one-x"]


def test_dependency_arguments_are_evaluated_in_dependent_scope(runner, shell) -> None:
    r = runner(
        """
        release version: (build 'dist') (tag 'v' + version)
            echo release {{version}}
        build dir:
            echo build {{dir}}
        tag name:
            echo tag {{name}}
        """
    )
    r.run("release", ["1.0"])
    assert shell.commands == ["echo build dist", "echo tag v1.0", "echo release 1.0"]


def test_shared_dependency_runs_once(runner, shell) -> None:
    r = runner(
        """
        all: lint test
        lint: setup
            echo lint
        test: setup
            echo test
        setup:
            echo setup
        """
    )
    assert r.plan("all").names() == ["setup", "lint", "test", "all"]
    r.run("all")
    assert shell.commands == ["echo setup", "echo lint", "echo test"]


def test_same_recipe_with_different_arguments_runs_each_time(runner, shell) -> None:
    r = runner("all: (push 'a') (push 'b') (push 'a')\npush target:\n    push {{target}}\n")
    r.run("all")
    assert shell.commands == ["push a", "push b"]


def test_rerun_attribute_disables_deduplication(runner, shell) -> None:
    r = runner("all: tick other\nother: tick\n[rerun]\ntick:\n    echo tick\n")
    r.run("all")
    assert shell.commands == ["echo tick", "echo tick"]


def test_plan_puts_prerequisites_first(runner) -> None:
    r = runner(
        """
        e: d c
        d: b
        c: a b
        b: a
        a:
        """
    )
    plan = r.plan("e")
    names = plan.names()
    assert sorted(names) == ["a", "b", "c", "d", "e"]
    for entry in plan.entries:
        for dep in entry.recipe.dependencies:
            assert names.index(dep.recipe) < names.index(entry.recipe.name)


def test_tolerated_failures_continue(namespace) -> None:
    shell = RecordingShell(statuses={"false": 1, "rm gone": 2})
    r = Runner(
        namespace("x:\n    -false\n    echo next\n[no-exit-on-error]\ny:\n    rm gone\n    echo y\n"),
        shell=shell,
        console=Console(),
    )

    result = r.run("x")
    assert result.state is RunState.COMPLETED
    assert [t.command for t in result.tolerated] == ["false"]

    result = r.run("y")
    assert result.exit_code == 0
    assert result.tolerated[0].status == 2
    assert shell.commands == ["false", "echo next", "rm gone", "echo y"]


def test_dry_run_executes_nothing(runner, shell, capsys) -> None:
    result = runner("@x:\n    echo one\n    echo two\n", dry_run=True).run("x")

    assert shell.commands == []
    assert result.executed == []
    assert capsys.readouterr().err.splitlines() == ["echo one", "echo two"]


def test_echo_rules(runner, capsys) -> None:
    runner(
        """
        loud:
            echo a
            @echo b
        @quiet:
            echo c
            @echo d
        [silent]
        hushed:
            echo e
        """
    ).run("loud")
    assert capsys.readouterr().err.splitlines() == ["echo a"]


def test_quiet_recipe_echoes_flipped_lines(runner, capsys) -> None:
    runner("@quiet:\n    echo c\n    @echo d\n").run("quiet")
    assert capsys.readouterr().err.splitlines() == ["echo d"]


def test_quiet_setting(runner, capsys) -> None:
    runner("set quiet\nx:\n    echo a\n    @echo b\n").run("x")
    assert capsys.readouterr().err.splitlines() == ["echo b"]


def test_overrides(runner, shell) -> None:
    runner(GREET, overrides={"greeting": "hello"}).run("greet")
    assert shell.commands == ["echo hello world"]


def test_environment_exports(runner, shell) -> None:
    runner("export A := 'a'\nb := 'b'\nx $p q:\n    env\n").run("x", ["P", "Q"])
    env = shell.calls[0]["env"]
    assert env["A"] == "a"
    assert env["p"] == "P"
    assert "b" not in env and "q" not in env
    assert env["PATH"] == os.environ["PATH"]


def test_positional_arguments_setting(runner, shell) -> None:
    runner("set positional-arguments\nx a *rest:\n    echo $1\n").run("x", ["1", "2", "3"])
    assert shell.calls[0]["args"] == ("x", "1", "2", "3")


def test_working_directories(runner, shell, tmp_path) -> None:
    (tmp_path / "docs").mkdir()
    r = runner(
        """
        here:
            pwd
        [working-directory: 'docs']
        docs:
            pwd
        [no-cd]
        stay:
            pwd
        """,
        invocation_directory=tmp_path / "docs",
    )
    for name in ("here", "docs", "stay"):
        r.run(name)
    cwds = [call["cwd"] for call in shell.calls]
    assert cwds == [tmp_path.resolve(), (tmp_path / "docs").resolve(), (tmp_path / "docs").resolve()]


def test_missing_working_directory(runner, shell) -> None:
    r = runner("[working-directory: 'absent']\nx:\n    pwd\n")
    with pytest.raises(ConfigurationError, match="working directory not found"):
        r.run("x")
    assert shell.commands == []


def test_working_directory_option_overrides_setting(runner, shell, tmp_path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "other").mkdir()
    text = "set working-directory := 'src'\nx:\n    pwd\n"

    runner(text).run("x")
    runner(text, working_directory=tmp_path / "other").run("x")

    assert [c["cwd"] for c in shell.calls] == [(tmp_path / "src").resolve(), (tmp_path / "other").resolve()]


# ----------------------------------------------------------------------
# Real shell
# ----------------------------------------------------------------------

def test_commands_run_in_the_recipe_directory(write, tmp_path) -> None:
    root = write(
        """
        greeting := "hi"

        greet name='world':
            echo {{greeting}} {{name}} > out.txt
        """
    )
    result = run_recipe("greet", ["there"], path=root, console=Console())

    assert result.exit_code == 0
    assert (tmp_path / "out.txt").read_text().strip() == "hi there"


def test_failing_shell_command(write, tmp_path) -> None:
    root = write("b: a\n    touch b.txt\na:\n    exit 4\n")
    result = run_recipe("b", path=root, shell=Shell(), console=Console())

    assert result.exit_code == 4
    assert result.state is RunState.FAILED
    assert not (tmp_path / "b.txt").exists()


def test_exported_parameter_reaches_the_shell(write, tmp_path) -> None:
    root = write("x $NAME:\n    printf '%s' \"$NAME\" > name.txt\n")
    run_recipe("x", ["bob"], path=root, console=Console())
    assert (tmp_path / "name.txt").read_text() == "bob"


def test_shared_dependency_binds_backtick_default_once(runner) -> None:
    r = runner("d: b c\nb: a\nc: a\na x=`echo $$`:\n", shell=Shell())

    plan = r.plan("d")

    assert plan.names() == ["a", "b", "c", "d"]


def test_backtick_default_of_shared_dependency_is_captured_once(runner) -> None:
    class CountingShell(RecordingShell):
        def capture(self, command, *, cwd, env=None):
            super().capture(command, cwd=cwd, env=env)
            return str(len(self.captured))

    shell = CountingShell()
    r = runner("d: b c\nb: a\nc: a\na x=`date +%N`:\n    echo {{x}}\n", shell=shell)

    r.run("d")

    assert shell.captured == ["date +%N"]
    assert shell.commands == ["echo 1"]


def test_plan_walks_the_dependency_graph(runner) -> None:
    r = runner("release: (build 'prod') test\ntest:\nbuild env:\n")
    assert [dep.recipe for dep in r.graph.dependencies("release")] == ["build", "test"]

    plan = r.plan("release")
    assert plan.names() == ["build", "test", "release"]
    assert plan.entries[0].arguments == ("prod",)

    r.graph.edges["release"] = r.graph.edges["release"][1:]
    assert r.plan("release").names() == ["test", "release"]
