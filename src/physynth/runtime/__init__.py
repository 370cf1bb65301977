"""
Console evaluator: value sorts, the value store, sort evaluators, method
dispatch and the statement executor.
"""

from .values import Sort, PRIORITY, Value, format_value, format_number
from .store import ValueStore
from .context import EvalContext, EvaluatorPanic
from .evaluators import SortEvaluator
from .interpreter import ControlFlow, Interpreter

__all__ = [
    "Sort", "PRIORITY", "Value", "format_value", "format_number",
    "ValueStore",
    "EvalContext", "EvaluatorPanic",
    "SortEvaluator",
    "ControlFlow", "Interpreter",
]
