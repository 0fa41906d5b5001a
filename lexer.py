from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple


logger = logging.getLogger("aspect.lexer")


class AspectError(Exception):
    """Base class for interpreter errors."""


class AspectSyntaxError(AspectError):
    """Raised when a statement does not have the expected shape."""


# operator, then the rest of the line with its leading whitespace consumed
_OP_REST = re.compile(r"(\S+)\s*(.*)", re.DOTALL)
_PARAM = re.compile(r"\S+")
_QUOTED_PAIR = re.compile(r'"(.*?)"\s*"?([^"]*)"?$')


@dataclass
class Instruction:
    line: str
    operator: str
    rest: str
    params: List[str] = field(default_factory=list)
    quoted: Optional[Tuple[str, str]] = None
    line_number: int = 0


class LineSegmenter:
    def __init__(self, text: str) -> None:
        self.text = text

    def instructions(self) -> Iterator[Instruction]:
        # Empty lines never reach the split. A line holding only whitespace
        # fails the split and ends segmentation for the rest of the text.
        for line_number, line in enumerate(self.text.split("\n"), start=1):
            if line == "":
                continue
            match = _OP_REST.search(line)
            if match is None:
                logger.debug("line %d has no operator; discarding the remaining source", line_number)
                return
            operator, rest = match.group(1), match.group(2)
            quoted_match = _QUOTED_PAIR.search(rest)
            yield Instruction(
                line=line,
                operator=operator,
                rest=rest,
                params=_PARAM.findall(rest),
                quoted=quoted_match.groups() if quoted_match else None,
                line_number=line_number,
            )

    def __iter__(self) -> Iterator[Instruction]:
        return self.instructions()
