"""End-to-end tests through the click command group."""

import pytest
from click.testing import CliRunner

from runbook.cli import cli


@pytest.fixture
def invoke(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RUNBOOK_FILE", raising=False)
    monkeypatch.delenv("RUNBOOK_WORKING_DIRECTORY", raising=False)
    runner = CliRunner()

    def _invoke(*args, **kwargs):
        return runner.invoke(cli, list(args), catch_exceptions=False, **kwargs)

    return _invoke


GREET = """
greeting := "hi"

# Say hello
greet name='world':
    echo {{greeting}} {{name}} > greeting.txt

[private]
_hidden:
    true
"""


def test_run_with_argument(write, invoke, tmp_path) -> None:
    write(GREET)
    result = invoke("run", "greet", "there")

    assert result.exit_code == 0, result.output
    assert (tmp_path / "greeting.txt").read_text().strip() == "hi there"
    assert "echo hi there > greeting.txt" in result.output


def test_run_default_recipe(write, invoke, tmp_path) -> None:
    write(GREET)
    assert invoke("run").exit_code == 0
    assert (tmp_path / "greeting.txt").read_text().strip() == "hi world"


def test_set_overrides_a_variable(write, invoke, tmp_path) -> None:
    write(GREET)
    result = invoke("--set", "greeting", "hello", "run", "greet")
    assert result.exit_code == 0, result.output
    assert (tmp_path / "greeting.txt").read_text().strip() == "hello world"


def test_recipe_arguments_may_look_like_options(write, invoke, tmp_path) -> None:
    write("args *rest:\n    echo {{rest}} > args.txt\n")
    result = invoke("run", "args", "--release", "-v")
    assert result.exit_code == 0, result.output
    assert (tmp_path / "args.txt").read_text().strip() == "--release -v"


def test_dry_run(write, invoke, tmp_path) -> None:
    write(GREET)
    result = invoke("run", "--dry-run", "greet")
    assert result.exit_code == 0
    assert "echo hi world > greeting.txt" in result.output
    assert not (tmp_path / "greeting.txt").exists()


def test_failed_command_exit_code_propagates(write, invoke, tmp_path) -> None:
    write("b: a\n    touch b.txt\na:\n    exit 3\n")
    result = invoke("run", "b")

    assert result.exit_code == 3
    assert result.output.count("FAILED (exit=3)") == 1
    assert "command failed" not in result.output
    assert not (tmp_path / "b.txt").exists()


def test_configuration_error_exit_code(write, invoke) -> None:
    write("a: b\nb: a\n")
    result = invoke("run", "a")
    assert result.exit_code == 65
    assert "dependency cycle" in result.output


def test_syntax_error_location(write, invoke) -> None:
    write("ok:\n    true\nx a a:\n")
    result = invoke("list")
    assert result.exit_code == 65
    assert "runbook:3:5" in result.output


def test_missing_argument_exit_code(write, invoke, tmp_path) -> None:
    write("deploy env:\n    touch deployed\n")
    result = invoke("run", "deploy")
    assert result.exit_code == 65
    assert "missing argument" in result.output
    assert not (tmp_path / "deployed").exists()


def test_evaluation_error_exit_code(write, invoke) -> None:
    write("v := `exit 9`\nx:\n    echo {{v}}\n")
    result = invoke("run", "x")
    assert result.exit_code == 66
    assert "backtick failed" in result.output


def test_non_utf8_recipe_file_exit_code(invoke, tmp_path) -> None:
    (tmp_path / "runbook").write_bytes(b"x:\n    echo \xff\n")
    result = invoke("run", "x")
    assert result.exit_code == 65
    assert "UTF-8" in result.output


def test_non_utf8_backtick_output_exit_code(write, invoke) -> None:
    write("x := `printf '\\377'`\nr:\n    echo {{x}}\n")
    result = invoke("run", "r")
    assert result.exit_code == 66
    assert "backtick failed" in result.output


def test_no_recipe_file(invoke) -> None:
    result = invoke("list")
    assert result.exit_code == 65


def test_file_option_and_envvar(write, invoke, tmp_path) -> None:
    write("only:\n    true\n", "tasks/main.just")

    result = invoke("--file", "tasks/main.just", "list")
    assert "only" in result.output

    result = invoke("list", env={"RUNBOOK_FILE": str(tmp_path / "tasks" / "main.just")})
    assert "only" in result.output


def test_list_hides_private_recipes(write, invoke) -> None:
    write(GREET + "alias hello := greet\n")
    result = invoke("list")

    assert result.exit_code == 0
    assert "greet name='world'" in result.output
    assert "# Say hello" in result.output
    assert "_hidden" not in result.output
    assert "hello -> greet" in result.output


def test_show(write, invoke) -> None:
    write(GREET)
    result = invoke("show", "greet")
    assert result.exit_code == 0
    assert result.output.startswith("# Say hello\ngreet name='world':")

    assert invoke("show", "nope").exit_code == 65


def test_evaluate(write, invoke) -> None:
    write("a := 'x'\nb := a + 'y'\n")

    result = invoke("evaluate", "b")
    assert result.output.strip() == "xy"

    result = invoke("evaluate")
    assert "a := 'x'" in result.output
    assert "b := 'xy'" in result.output

    assert invoke("evaluate", "c").exit_code == 65


def test_dump_inlines_imports(write, invoke) -> None:
    write("lint:\n    ruff check .\n", "lint.just")
    write("import 'lint.just'\nrun:\n    echo run\n")

    result = invoke("dump")

    assert result.exit_code == 0
    assert "import" not in result.output
    assert "run:\n    echo run" in result.output
    assert "lint:\n    ruff check ." in result.output


def test_working_directory_option(write, invoke, tmp_path) -> None:
    (tmp_path / "out").mkdir()
    write("x:\n    touch marker\n")
    result = invoke("-d", "out", "run", "x")
    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "marker").exists()
