from __future__ import annotations

import logging
import unittest
from typing import List

import extensions as extensions_module
import interpreter as interpreter_module
from extensions import FunctionRegistry
from interpreter import (
    INVALID_VARIABLE,
    AspectRuntimeError,
    Builtins,
    Interpreter,
    RuntimeContext,
    build_default_registry,
    construct_error,
    fetch_variable,
    interpret,
    remove_quotation_marks,
)


EXAMPLE_PROGRAM = """declare foo1 as <Hello, world!>
declare foo2 as <Goodbye, world!>

print("@foo1") Comment Example
print("@foo2") Comment Example 2

Foo() Prints "Foo"
Test() Calls the Test function

if {5 == 5) [] Causes an Aspect Error to output
"""


class _InterpreterCase(unittest.TestCase):
    def setUp(self) -> None:
        self.output: List[str] = []
        self.diagnostics: List[str] = []
        self.registry = build_default_registry()
        self.interpreter = Interpreter(
            registry=self.registry,
            output_sink=self.output.append,
            diagnostic_sink=self.diagnostics.append,
        )

    def tearDown(self) -> None:
        self.interpreter.reporter.close()

    def run_source(self, source: str, debugging: bool = True) -> RuntimeContext:
        context = self.interpreter.execute(source, debugging=debugging)
        self.interpreter.reporter.flush()
        return context


class DeclarationAndPrintTests(_InterpreterCase):
    def test_declared_variable_prints_verbatim(self) -> None:
        context = self.run_source('declare foo1 as <Hello, world!>\nprint("@foo1")')
        self.assertEqual(self.output, ["Hello, world!"])
        self.assertEqual(context.variables, {"foo1": "Hello, world!"})
        self.assertEqual(context.error_log, [])

    def test_last_declaration_wins(self) -> None:
        self.run_source('declare x as <1>\ndeclare x as <2>\nprint("@x")')
        self.assertEqual(self.output, ["2"])

    def test_quotes_survive_in_values(self) -> None:
        self.run_source('declare q as <"hi">\nprint("@q")')
        self.assertEqual(self.output, ['"hi"'])

    def test_literal_and_unbound_reference(self) -> None:
        self.run_source('print("plain")\nprint("@nope")')
        self.assertEqual(self.output, ["plain", "@nope"])

    def test_test_builtin(self) -> None:
        self.run_source("Test()")
        self.assertEqual(len(self.output), 1)
        self.assertTrue(self.output[0].startswith("Test function called at "))
        self.assertTrue(self.output[0].endswith("."))

    def test_unknown_operator_is_ignored(self) -> None:
        context = self.run_source("hello world\nUnknown()\ndeclare broken")
        self.assertEqual(self.output, [])
        self.assertEqual(context.error_log, [])
        self.assertEqual(context.variables, {})


class ConditionalTests(_InterpreterCase):
    def test_true_condition_runs_call(self) -> None:
        self.run_source('if {2 > 1} [print("yes")]')
        self.assertEqual(self.output, ["yes"])

    def test_false_condition_is_silent(self) -> None:
        context = self.run_source('if {1 > 2} [print("yes")]')
        self.assertEqual(self.output, [])
        self.assertEqual(context.error_log, [])

    def test_bad_comparison_is_silent(self) -> None:
        context = self.run_source('if {abc == 5} [print("yes")]')
        self.assertEqual(self.output, [])
        self.assertEqual(context.error_log, [])
        self.assertEqual(self.diagnostics, [])

    def test_true_condition_declares(self) -> None:
        self.run_source('if {1 < 2} [declare x as <yes>]\nprint("@x")')
        self.assertEqual(self.output, ["yes"])

    def test_unresolved_call_action_falls_back_to_declaration(self) -> None:
        context = self.run_source("if {1 == 1} [declare y as <f(1)>]")
        self.assertEqual(context.variables, {"y": "f(1)"})

    def test_malformed_header_is_reported(self) -> None:
        context = self.run_source("if {5 == 5) [] Causes an Aspect Error to output")
        self.assertEqual(len(context.error_log), 1)
        self.assertIn("Aspect SyntaxError", context.error_log[0])
        self.assertEqual(self.diagnostics, context.error_log)

    def test_malformed_header_without_debugging(self) -> None:
        context = self.run_source("if {5 == 5) []", debugging=False)
        self.assertEqual(len(context.error_log), 1)
        self.assertEqual(self.diagnostics, [])

    def test_failing_action_is_recorded(self) -> None:
        def broken(_params, _context) -> None:
            raise ValueError("bad action")

        self.registry.add("Broken", broken)
        context = self.run_source("if {1 == 1} [Broken()]")
        self.assertEqual(len(context.error_log), 1)
        self.assertIn("ValueError: bad action", context.error_log[0])


class RegistryDispatchTests(_InterpreterCase):
    def test_non_string_registration_does_not_break_dispatch(self) -> None:
        outcome = self.registry.register([{"name": 5, "main": lambda params, context: None}])
        self.assertEqual(outcome.missing_data, 1)
        context = self.run_source('print("x")\nOther()')
        self.assertEqual(self.output, ["x"])
        self.assertEqual(context.error_log, [])

    def test_host_function_receives_params_and_context(self) -> None:
        seen = []

        def capture(params, context) -> None:
            seen.append((params, context.variables.get("v")))

        self.registry.register([{"name": "Capture", "main": capture}])
        self.run_source('declare v as <1>\nif {1 == 1} [Capture("a" "b")]')
        self.assertEqual(seen, [(['"a"', '"b"'], "1")])

    def test_override_print(self) -> None:
        calls = []
        self.registry.register([{"name": "print", "main": lambda params, context: calls.append(params)}])
        self.run_source('print("x")')
        self.assertEqual(calls, [['"x"']])
        self.assertEqual(self.output, [])

    def test_longest_prefix_dispatch(self) -> None:
        self.registry.register([{"name": "pr", "main": lambda params, context: context.output_sink("short")}])
        self.run_source('print("long")\nprx()')
        self.assertEqual(self.output, ["long", "short"])

    def test_failing_function_is_recorded_and_run_continues(self) -> None:
        def explode(_params, _context) -> None:
            raise ZeroDivisionError("division by zero")

        self.registry.add("Explode", explode)
        context = self.run_source('Explode()\nprint("after")')
        self.assertEqual(self.output, ["after"])
        self.assertEqual(len(context.error_log), 1)
        self.assertIn("Aspect RuntimeError", context.error_log[0])
        self.assertIn("ZeroDivisionError: division by zero", context.error_log[0])
        self.assertEqual(self.diagnostics, context.error_log)

    def test_example_program(self) -> None:
        self.registry.register({"Foo": {"name": "Foo", "main": lambda params, context: context.output_sink("Foo")}})
        first_error = self.interpreter.interpret(EXAMPLE_PROGRAM)
        self.interpreter.reporter.flush()
        self.assertEqual(self.output[:3], ["Hello, world!", "Goodbye, world!", "Foo"])
        self.assertTrue(self.output[3].startswith("Test function called at "))
        self.assertEqual(len(self.output), 4)
        self.assertIsNotNone(first_error)
        self.assertIn("Aspect SyntaxError", first_error)
        self.assertEqual(self.diagnostics, [first_error])


class TruncationTests(_InterpreterCase):
    def test_unsplittable_first_line_discards_program(self) -> None:
        context = self.run_source('   \ndeclare a as <1>\nprint("a")')
        self.assertEqual(self.output, [])
        self.assertEqual(context.variables, {})

    def test_unsplittable_line_discards_rest(self) -> None:
        self.run_source('print("a")\n \t \nprint("b")')
        self.assertEqual(self.output, ["a"])


class RuntimeSupportTests(_InterpreterCase):
    def test_runtime_error_render(self) -> None:
        error = AspectRuntimeError("Explode", KeyError("k"))
        self.assertEqual(str(error), "KeyError: 'k'")
        rendered = error.render()
        self.assertTrue(rendered.startswith("Aspect RuntimeError\n"))
        self.assertIn(" [Issue Core: Explode]\n", rendered)

    def test_module_loggers(self) -> None:
        self.assertEqual(interpreter_module.logger.name, "aspect.interpreter")
        self.assertEqual(extensions_module.logger.name, "aspect.extensions")
        self.assertTrue(
            any(isinstance(h, logging.NullHandler) for h in logging.getLogger("aspect").handlers)
        )

    def test_fetch_variable(self) -> None:
        context = RuntimeContext(variables={"a": "1"})
        self.assertEqual(fetch_variable("@a", context), "1")
        self.assertIs(fetch_variable("@b", context), INVALID_VARIABLE)
        self.assertIs(fetch_variable("a", context), INVALID_VARIABLE)

    def test_remove_quotation_marks(self) -> None:
        self.assertEqual(remove_quotation_marks('"a"b"'), "ab")
        self.assertEqual(remove_quotation_marks(5), 5)

    def test_construct_error(self) -> None:
        self.assertEqual(
            construct_error("issue", "core", "usage"),
            "Aspect Error\n [Issue: issue]\n [Issue Core: core]\n [Expected Usage: usage]",
        )
        self.assertEqual(construct_error("only", kind="SyntaxError"), "Aspect SyntaxError\n [Issue: only]\n")

    def test_print_rejects_unsupported_params(self) -> None:
        context = self.interpreter.new_context()
        Builtins()._print([object(), '"never"'], context)
        self.interpreter.reporter.flush()
        self.assertEqual(self.output, [])
        self.assertEqual(len(self.diagnostics), 1)
        self.assertIn("invalid data type", self.diagnostics[0])
        self.assertEqual(context.error_log, [])

    def test_print_reports_missing_data(self) -> None:
        context = self.interpreter.new_context()
        Builtins()._print([None, '"ok"'], context)
        self.interpreter.reporter.flush()
        self.assertEqual(self.output, ["ok"])
        self.assertIn("Nonexistent", self.diagnostics[0])

    def test_forced_report_ignores_debugging(self) -> None:
        context = self.interpreter.new_context(debugging=False)
        self.assertFalse(context.report("quiet"))
        self.assertTrue(context.report("loud", force=True))
        self.interpreter.reporter.flush()
        self.assertEqual(self.diagnostics, ["loud"])

    def test_failing_sink_never_raises(self) -> None:
        def bad_sink(_message: str) -> None:
            raise OSError("sink closed")

        interpreter = Interpreter(output_sink=self.output.append, diagnostic_sink=bad_sink)
        try:
            context = interpreter.execute("if {1 == 1 [x]")
            interpreter.reporter.flush()
        finally:
            interpreter.reporter.close()
        self.assertEqual(len(context.error_log), 1)


class OneShotInterpretTests(unittest.TestCase):
    def test_interpret_returns_first_error(self) -> None:
        output: List[str] = []
        registry = FunctionRegistry()
        error = interpret('print("x")\nif {oops', debugging=False, registry=registry, output_sink=output.append)
        self.assertEqual(output, [])
        self.assertIn("Aspect SyntaxError", error)

    def test_interpret_without_errors(self) -> None:
        output: List[str] = []
        self.assertIsNone(interpret('print("x")', output_sink=output.append))
        self.assertEqual(output, ["x"])


if __name__ == "__main__":
    unittest.main()
