from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from lexer import AspectSyntaxError, Instruction


DECLARE_KEYWORD = "declare"
IF_KEYWORD = "if"

_VARIABLE_NAME = re.compile(r"(\w+)\s+as\s+<")
_VARIABLE_DATA = re.compile(r"<(.*?)>", re.DOTALL)
_CONDITION = re.compile(r"\{([^}]*)\}")
_ACTION = re.compile(r"\{.*?\}\s*\[(.*?)\]\s*$", re.DOTALL)
_NUMBER = r"\d+(?:\.\d*)?(?:[eE][+-]?\d+)?"
_COMPARISON = re.compile(rf"({_NUMBER})\s*(==|~=|!=|>=|<=|>|<|is)\s*({_NUMBER})")
_QUOTED_PARAM = re.compile(r'"[^\s"]+"')

_COMPARATORS: Dict[str, Callable[..., np.bool_]] = {
    "==": np.equal,
    "is": np.equal,
    "~=": np.not_equal,
    "!=": np.not_equal,
    ">": np.greater,
    "<": np.less,
    ">=": np.greater_equal,
    "<=": np.less_equal,
}


@dataclass(frozen=True)
class Declaration:
    name: str
    value: str


@dataclass(frozen=True)
class Conditional:
    line: str


@dataclass(frozen=True)
class Call:
    text: str
    params: List[str]


@dataclass(frozen=True)
class NoOp:
    line: str


Statement = Union[Declaration, Conditional, Call, NoOp]


def parse_declaration(text: str) -> Tuple[str, str]:
    """Split ``declare NAME as <VALUE>`` into ``(NAME, VALUE)``.

    The value is kept verbatim; quotation marks survive declaration.
    """
    if not text.startswith(DECLARE_KEYWORD):
        raise AspectSyntaxError("declaration must start with 'declare'")
    start = text.find("<")
    end = text.find(">")
    if start == -1 or end == -1 or start > end:
        raise AspectSyntaxError("declaration value must be wrapped in <...>")
    name = _VARIABLE_NAME.search(text)
    data = _VARIABLE_DATA.search(text)
    if name is None or data is None:
        raise AspectSyntaxError("declaration must use the form 'declare NAME as <VALUE>'")
    return name.group(1), data.group(1)


def parse_condition_header(text: str) -> str:
    # First '}' closes the condition; braces do not nest.
    match = _CONDITION.search(text)
    if match is None:
        raise AspectSyntaxError("condition must be wrapped in {...}")
    return match.group(1)


def evaluate_comparison(expr: str) -> bool:
    """Evaluate ``<number> <operator> <number>`` with literal operands only."""
    match = _COMPARISON.fullmatch(expr.strip())
    if match is None:
        raise AspectSyntaxError(f"cannot evaluate comparison '{expr}'")
    left, op, right = match.groups()
    try:
        lhs = np.float64(left)
        rhs = np.float64(right)
    except ValueError as exc:
        raise AspectSyntaxError(f"cannot evaluate comparison '{expr}'") from exc
    return bool(_COMPARATORS[op](lhs, rhs))


def parse_action_tail(text: str) -> str:
    match = _ACTION.search(text)
    if match is None:
        raise AspectSyntaxError("action must follow the condition as [...]")
    return match.group(1)


def _balanced_parens(text: str) -> Optional[Tuple[int, int]]:
    # Leftmost '(' that has a matching ')'; an unmatched '(' is skipped.
    start = text.find("(")
    while start != -1:
        depth = 0
        for index in range(start, len(text)):
            ch = text[index]
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return start, index
        start = text.find("(", start + 1)
    return None


def parse_call_signature(text: str) -> Tuple[bool, Optional[List[str]]]:
    """Detect ``name("a" "b")`` and return its quoted parameters.

    Parameters keep their quotation marks; only single contiguous quoted
    tokens are recognised.
    """
    span = _balanced_parens(text)
    if span is None:
        return False, None
    start, end = span
    return True, _QUOTED_PARAM.findall(text[start + 1:end])


def classify(instruction: Instruction) -> Statement:
    operator = instruction.operator
    if operator == DECLARE_KEYWORD:
        try:
            name, value = parse_declaration(instruction.line)
        except AspectSyntaxError:
            pass
        else:
            return Declaration(name=name, value=value)
    is_call, params = parse_call_signature(operator)
    if is_call:
        return Call(text=operator, params=params or [])
    if operator == IF_KEYWORD:
        return Conditional(line=instruction.line)
    return NoOp(line=instruction.line)
