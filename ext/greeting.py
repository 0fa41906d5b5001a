"""Aspect Extension: greeting.

Registers ``Foo()``, which writes ``Foo`` to the output channel, and
``Greet("name")``, which greets each quoted parameter.

    aspect.py --ext ext/greeting.py script.asp
"""

from __future__ import annotations

from typing import Any, List


ASPECT_EXTENSION_NAME = "greeting"


def _foo(_params: List[Any], context: Any) -> None:
    context.output_sink("Foo")


def _greet(params: List[Any], context: Any) -> None:
    for param in params:
        name = str(param).strip('"')
        context.output_sink(f"Hello, {name}!")


def aspect_register():
    return {
        "Foo": {"name": "Foo", "main": _foo},
        "Greet": {"name": "Greet", "main": _greet},
    }
