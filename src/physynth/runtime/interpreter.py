"""
Statement executor for console input.

``Interpreter.eval`` parses one console input, echoes it to the transcript
and runs its statements in order; every statement appends zero or more
``// ...`` result lines. Evaluation failures are silent: a statement whose
expressions don't resolve simply does nothing.
"""

import logging
import math
from enum import Enum
from typing import Iterable, Optional, Union

from ..lang.ast import (
    AssignmentStatement, Block, BreakStatement, ContinueStatement,
    ExpressionStatement, ForStatement, FunctionCall, IfStatement, IndexAccess,
    LetStatement, Literal, MethodCall, Path, RangeExpr, Statement,
)
from ..lang.errors import DiagnosticCollector, ScriptError
from ..lang.parser import parse_program
from ..keys import parse_shortcut
from .builtins import VERBS, divide, remainder
from .context import EvalContext
from .evaluators import SortEvaluator, ident
from .methods import exec_method_statement
from .values import Sort, Value, format_value, number_val

logger = logging.getLogger(__name__)

COMPOUND_OPERATORS = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": divide,
    "%": remainder,
}


class ControlFlow(Enum):
    """How a statement finished."""
    NORMAL = "normal"
    BREAK = "break"
    CONTINUE = "continue"


class Interpreter:
    """
    Runs console input against an evaluation context.

    Holds the transcript of the session and the diagnostics of every input
    that failed to parse.
    """

    def __init__(self, ctx: EvalContext):
        self.ctx = ctx
        self.evaluator = SortEvaluator(ctx)
        self.transcript = ""
        self.diagnostics = DiagnosticCollector()

    # =========================================================================
    # Entry points
    # =========================================================================

    def eval(self, text: str) -> None:
        """Echo ``text`` and run it, appending result lines unless in quiet mode."""
        if not text:
            return
        try:
            program = parse_program(text)
        except ScriptError as exc:
            self.diagnostics.add(exc.diagnostic)
            logger.debug("parse error: %s", exc.diagnostic.message)
            self.transcript += f"\n\n// error: {exc.diagnostic.short()}"
            return
        self.transcript += "\n" + text
        output = self.run(program.statements)
        if not self.ctx.quiet:
            self.transcript += output

    def quiet_eval(self, text: str) -> None:
        """Run ``text`` without touching the transcript; parse errors are ignored."""
        if not text:
            return
        try:
            program = parse_program(text)
        except ScriptError:
            return
        self.run(program.statements)

    def run(self, statements: Iterable[Statement]) -> str:
        """Execute top-level statements and return their result lines."""
        self.ctx.output = []
        try:
            for statement in statements:
                if self.execute(statement) is not ControlFlow.NORMAL:
                    break
        finally:
            output = self.ctx.take_output()
        return output

    # =========================================================================
    # Statements
    # =========================================================================

    def execute(self, stmt: Statement) -> ControlFlow:
        if isinstance(stmt, ExpressionStatement):
            self._execute_expression(stmt)
        elif isinstance(stmt, LetStatement):
            self._execute_let(stmt)
        elif isinstance(stmt, AssignmentStatement):
            self._execute_assignment(stmt)
        elif isinstance(stmt, ForStatement):
            self._execute_for(stmt)
        elif isinstance(stmt, IfStatement):
            return self._execute_if(stmt)
        elif isinstance(stmt, Block):
            return self._execute_block(stmt)
        elif isinstance(stmt, BreakStatement):
            return ControlFlow.BREAK
        elif isinstance(stmt, ContinueStatement):
            return ControlFlow.CONTINUE
        return ControlFlow.NORMAL

    def _execute_expression(self, stmt: ExpressionStatement) -> None:
        expr = stmt.expression
        ev = self.evaluator
        if isinstance(expr, FunctionCall) and expr.callee_name in VERBS:
            VERBS[expr.callee_name](ev, expr.arguments)
            return
        if isinstance(expr, MethodCall) and exec_method_statement(ev, expr):
            return
        value = ev.resolve(expr)
        if value is not None:
            self.ctx.emit(format_value(value))

    def _execute_let(self, stmt: LetStatement) -> None:
        value = self.evaluator.resolve(stmt.value)
        if value is not None:
            self.ctx.store.bind(stmt.name, value)

    def _execute_assignment(self, stmt: AssignmentStatement) -> None:
        target = stmt.target
        if isinstance(target, Literal):
            self._assign_key(target.value, stmt)
        elif isinstance(target, Path):
            self._assign_name(target.name, stmt)
        elif isinstance(target, IndexAccess):
            self._assign_index(target, stmt)

    def _assign_name(self, name: str, stmt: AssignmentStatement) -> None:
        """Overwrite a binding, evaluating the right side as the sort it already has."""
        store = self.ctx.store
        sort = store.sort_of(name)
        if sort is None:
            return
        if stmt.operator is not None:
            if sort is not Sort.NUMBER:
                return
            rhs = self.evaluator.eval_number(stmt.value)
            if rhs is not None:
                current = store.get(name, Sort.NUMBER)
                store.bind(name, number_val(COMPOUND_OPERATORS[stmt.operator](current, rhs)))
            return
        data = self.evaluator.eval_as(sort, stmt.value)
        if data is not None:
            store.assign(name, Value(data, sort))

    def _assign_index(self, target: IndexAccess, stmt: AssignmentStatement) -> None:
        name = ident(target.object)
        if name is None:
            return
        xs = self.ctx.store.get(name, Sort.ARRAY)
        if xs is None:
            return
        i = self.evaluator.eval_index(target.index)
        x = self.evaluator.eval_number(stmt.value)
        if i is None or x is None or i >= len(xs):
            return
        if stmt.operator is not None:
            x = COMPOUND_OPERATORS[stmt.operator](xs[i], x)
        xs[i] = x

    def _assign_key(self, key: str, stmt: AssignmentStatement) -> None:
        """``"quiet" = true;``, ``"keys" = false;``, ``"Ctrl+A" = "code";`` or ``"Ctrl+A" = 0;``."""
        if stmt.operator is not None:
            return
        flag = self.evaluator.eval_bool(stmt.value)
        if flag is not None:
            if key == "keys":
                self.ctx.keys_active = flag
            elif key == "quiet":
                self.ctx.quiet = flag
            return
        shortcut = parse_shortcut(key)
        if shortcut is None or not isinstance(stmt.value, Literal):
            return
        # any other literal clears the shortcut
        self.ctx.keys.bind(shortcut, self.evaluator.eval_text(stmt.value) or "")

    def _loop_domain(self, expr) -> Optional[Union[range, list]]:
        if isinstance(expr, RangeExpr):
            start = self.evaluator.eval_number(expr.start)
            end = self.evaluator.eval_number(expr.end)
            if start is None or end is None or not (math.isfinite(start) and math.isfinite(end)):
                return None
            return range(int(start), int(end))
        return self.evaluator.eval_array(expr)

    def _execute_for(self, stmt: ForStatement) -> None:
        domain = self._loop_domain(stmt.iterable)
        if domain is None:
            return
        store = self.ctx.store
        saved = store.lookup(stmt.variable)
        try:
            for x in domain:
                store.bind(stmt.variable, number_val(x))
                if self._execute_block(stmt.body) is ControlFlow.BREAK:
                    break
        finally:
            if saved is None:
                store.drop(stmt.variable)
            else:
                store.bind(stmt.variable, saved)

    def _execute_if(self, stmt: IfStatement) -> ControlFlow:
        condition = self.evaluator.eval_bool(stmt.condition)
        if condition is None:
            return ControlFlow.NORMAL
        if condition:
            return self._execute_block(stmt.then_block)
        if stmt.else_branch is not None:
            return self.execute(stmt.else_branch)
        return ControlFlow.NORMAL

    def _execute_block(self, block: Block) -> ControlFlow:
        for statement in block.statements:
            flow = self.execute(statement)
            if flow is not ControlFlow.NORMAL:
                return flow
        return ControlFlow.NORMAL
