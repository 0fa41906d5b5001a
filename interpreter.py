from __future__ import annotations
import logging
import numbers
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from lexer import AspectError, AspectSyntaxError, Instruction, LineSegmenter
from extensions import AspectFunction, AspectInvalidFunction, FunctionRegistry
from parser import (
    Call,
    Conditional,
    Declaration,
    classify,
    evaluate_comparison,
    parse_action_tail,
    parse_call_signature,
    parse_condition_header,
    parse_declaration,
)


logging.getLogger("aspect").addHandler(logging.NullHandler())
logger = logging.getLogger("aspect.interpreter")


class AspectRuntimeError(AspectError):
    """A registered function raised while running."""

    def __init__(self, function_name: str, cause: BaseException) -> None:
        super().__init__(f"{cause.__class__.__name__}: {cause}")
        self.function_name = function_name
        self.cause = cause

    def render(self) -> str:
        return construct_error(
            f"A registered function failed to execute as an action. {self}",
            self.function_name,
            "This is likely a result of an outdated engine, or a lack of error handling in the function. "
            "Ensure that any custom functions are properly coded.",
            kind="RuntimeError",
        )


class _InvalidVariable:
    _instance: Optional["_InvalidVariable"] = None

    def __new__(cls) -> "_InvalidVariable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "INVALID_VARIABLE"

    def __bool__(self) -> bool:
        return False


INVALID_VARIABLE = _InvalidVariable()


def construct_error(
    issue: Optional[str],
    issue_core: Optional[str] = None,
    expected_usage: Optional[str] = None,
    *,
    kind: str = "Error",
) -> str:
    text = f"Aspect {kind}\n"
    if issue is not None:
        text += f" [Issue: {issue}]\n"
    if issue_core is not None:
        text += f" [Issue Core: {issue_core}]\n"
    if expected_usage is not None:
        text += f" [Expected Usage: {expected_usage}]"
    return text


class DiagnosticReporter:
    """Hands diagnostics to the sink on a background worker.

    Emission is fire-and-forget: a failing sink is logged and never raises
    back into the interpreter.
    """

    def __init__(self, sink: Optional[Callable[[str], None]] = None) -> None:
        self.sink = sink or logger.warning
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._lock = threading.Lock()

    def _emit(self, message: str) -> None:
        try:
            self.sink(str(message))
        except Exception:
            logger.debug("diagnostic sink failed", exc_info=True)

    def report(self, message: str, context: "RuntimeContext", *, force: bool = False) -> bool:
        if not (force or context.debugging):
            return False
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="aspect-diag")
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(self._executor.submit(self._emit, message))
        return True

    def flush(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
            self._pending = []
        if executor is not None:
            executor.shutdown(wait=True)


@dataclass
class RuntimeContext:
    variables: Dict[str, str] = field(default_factory=dict)
    error_log: List[str] = field(default_factory=list)
    debugging: bool = True
    output_sink: Callable[[str], None] = print
    reporter: DiagnosticReporter = field(default_factory=DiagnosticReporter)

    def report(self, message: str, *, force: bool = False) -> bool:
        return self.reporter.report(message, self, force=force)

    def record_error(self, message: str) -> None:
        self.error_log.append(message)
        self.report(message)

    def first_error(self) -> Optional[str]:
        return self.error_log[0] if self.error_log else None


def remove_quotation_marks(data: Any) -> Any:
    if isinstance(data, str):
        return data.replace('"', "")
    return data


def fetch_variable(text: str, context: RuntimeContext) -> Any:
    if not text.startswith("@"):
        return INVALID_VARIABLE
    return context.variables.get(text[1:], INVALID_VARIABLE)


class Builtins:
    def __init__(self) -> None:
        self.table: Dict[str, AspectFunction] = {}
        self.table["print"] = self._print
        self.table["Test"] = self._test

    def _print(self, params: List[Any], context: RuntimeContext) -> None:
        for data in params:
            if data is not None and not isinstance(data, (str, numbers.Number)):
                context.report(
                    construct_error(
                        "An invalid data type has been provided inside of the print() function.",
                        "print (Engine Issue)",
                        "Parameters must be quoted text or @variable references.",
                    )
                )
                break
            data = remove_quotation_marks(data)
            variable = fetch_variable(data, context) if isinstance(data, str) else INVALID_VARIABLE
            if variable is not INVALID_VARIABLE:
                context.output_sink(variable)
            elif data is None:
                context.report(
                    construct_error(
                        "Nonexistent, or unreadable data has been received.",
                        "print",
                        'print("@data")',
                    )
                )
            else:
                context.output_sink(str(data))

    def _test(self, _params: List[Any], context: RuntimeContext) -> None:
        context.output_sink(f"Test function called at {time.strftime('%X')}.")


def build_default_registry() -> FunctionRegistry:
    registry = FunctionRegistry()
    for name, main in Builtins().table.items():
        registry.add(name, main)
    return registry


class Interpreter:
    def __init__(
        self,
        *,
        registry: Optional[FunctionRegistry] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        diagnostic_sink: Optional[Callable[[str], None]] = None,
        debugging: bool = True,
    ) -> None:
        self.registry = registry if registry is not None else build_default_registry()
        self.output_sink = output_sink or (lambda text: print(text))
        self.reporter = DiagnosticReporter(diagnostic_sink)
        self.debugging = debugging

    def new_context(self, debugging: Optional[bool] = None) -> RuntimeContext:
        return RuntimeContext(
            debugging=self.debugging if debugging is None else debugging,
            output_sink=self.output_sink,
            reporter=self.reporter,
        )

    def execute(self, source: str, debugging: Optional[bool] = None) -> RuntimeContext:
        context = self.new_context(debugging)
        for instruction in LineSegmenter(source):
            self._execute_instruction(instruction, context)
        return context

    def interpret(self, source: str, debugging: Optional[bool] = None) -> Optional[str]:
        return self.execute(source, debugging).first_error()

    def _execute_instruction(self, instruction: Instruction, context: RuntimeContext) -> None:
        statement = classify(instruction)
        if isinstance(statement, Declaration):
            context.variables[statement.name] = statement.value
        elif isinstance(statement, Call):
            self._call_registry(statement.text, statement.params, context)
        elif isinstance(statement, Conditional):
            self._execute_conditional(statement, context)
        # NoOp lines are comments

    def _invoke(self, name: str, main: AspectFunction, params: List[str], context: RuntimeContext) -> None:
        try:
            main(params, context)
        except Exception as exc:
            raise AspectRuntimeError(name, exc) from exc

    def _call_registry(self, text: str, params: List[str], context: RuntimeContext) -> bool:
        """Invoke the registered function named by ``text``.

        Returns False when no registered name matches; a failing function is
        recorded as a RuntimeError and still counts as handled.
        """
        try:
            name, main = self.registry.resolve(text)
        except AspectInvalidFunction:
            return False
        try:
            self._invoke(name, main, params, context)
        except AspectRuntimeError as error:
            logger.debug("registered function %r failed", name, exc_info=error.cause)
            context.record_error(error.render())
        return True

    def _execute_conditional(self, statement: Conditional, context: RuntimeContext) -> None:
        try:
            condition = parse_condition_header(statement.line)
        except AspectSyntaxError:
            context.record_error(
                construct_error(
                    "A syntax error has been detected, involving a condition.",
                    "if {condition} ",
                    "Your statement should use the format: if {condition} [action] ",
                    kind="SyntaxError",
                )
            )
            return
        try:
            if not evaluate_comparison(condition):
                return
            action = parse_action_tail(statement.line)
        except AspectSyntaxError:
            return
        is_call, params = parse_call_signature(action)
        if is_call and self._call_registry(action, params or [], context):
            return
        try:
            name, value = parse_declaration(action)
        except AspectSyntaxError:
            return
        context.variables[name] = value


def interpret(
    source: str,
    debugging: bool = True,
    registry: Optional[FunctionRegistry] = None,
    output_sink: Optional[Callable[[str], None]] = None,
) -> Optional[str]:
    """Run ``source`` once and return the first collected error, if any."""
    interpreter = Interpreter(registry=registry, output_sink=output_sink, debugging=debugging)
    try:
        return interpreter.interpret(source)
    finally:
        interpreter.reporter.close()
