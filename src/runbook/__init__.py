from .errors import (
    ArityError,
    CircularReferenceError,
    CommandFailure,
    ConfigurationError,
    DependencyCycleError,
    DuplicateRecipeError,
    DuplicateVariableError,
    EvaluationError,
    ImportCycleError,
    MissingArgumentError,
    RecipeSyntaxError,
    RunbookError,
    ShellEvaluationError,
    UnknownRecipeError,
)
from .dag import Graph, build_graph
from .formatter import format_document
from .loader import find_runbook, load, resolve
from .model import Document, Namespace, Recipe, RunPlan, RunResult, RunState
from .parser import parse
from .runner import Runner, run_recipe
from .variables import Evaluator, evaluate

__version__ = "0.1.0"

__all__ = [
    "parse", "format_document", "resolve", "load", "find_runbook", "build_graph", "Graph",
    "Evaluator", "evaluate", "Runner", "run_recipe", "Document", "Namespace", "Recipe", "RunPlan",
    "RunResult", "RunState", "RunbookError", "ConfigurationError", "RecipeSyntaxError",
    "ImportCycleError", "DuplicateRecipeError", "DuplicateVariableError", "UnknownRecipeError",
    "DependencyCycleError", "CircularReferenceError", "ArityError", "MissingArgumentError",
    "EvaluationError", "ShellEvaluationError", "CommandFailure",
]
