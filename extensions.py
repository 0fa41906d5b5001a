from __future__ import annotations

import hashlib
import importlib.util
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from lexer import AspectError


logger = logging.getLogger("aspect.extensions")

# (parameter list, runtime context) -> None
AspectFunction = Callable[[List[Any], Any], Any]
Candidate = Mapping[str, Any]
Batch = Union[Mapping[Any, Candidate], Iterable[Candidate]]


class AspectExtensionError(AspectError):
    pass


class AspectInvalidFunction(AspectError):
    """Raised when call text matches no registered name."""


@dataclass
class RegistrationOutcome:
    distributions: int = 0
    incomplete: int = 0
    missing_data: int = 0
    issue: Optional[BaseException] = None

    def format(self) -> str:
        issue = None if self.issue is None else f"{self.issue.__class__.__name__}: {self.issue}"
        return (
            f"[Distributions: {self.distributions}] "
            f"[Unsuccessful: {self.incomplete}] "
            f"[Malformed Functions: {self.missing_data}] "
            f"[Python Issue: {issue}]"
        )

    def __str__(self) -> str:
        return self.format()


@dataclass
class FunctionRegistry:
    _functions: Dict[str, AspectFunction] = field(default_factory=dict)

    def add(self, name: str, main: AspectFunction) -> None:
        """Store or overwrite a single entry, bypassing batch bookkeeping."""
        if not name or not isinstance(name, str):
            raise AspectExtensionError("Function name must be a non-empty string")
        if not callable(main):
            raise AspectExtensionError(f"Function '{name}' must be callable")
        self._functions[name] = main

    def register(self, batch: Batch, *, as_string: bool = False) -> Union[RegistrationOutcome, str]:
        outcome = RegistrationOutcome()
        candidates: Iterable[Candidate] = batch.values() if isinstance(batch, Mapping) else batch
        # One boundary around the whole batch: a faulting candidate stops the
        # loop and everything after it is skipped.
        try:
            for candidate in candidates:
                name = candidate.get("name")
                main = candidate.get("main")
                # A name that cannot prefix-match call text counts as missing.
                if not isinstance(name, str) or not name or main is None:
                    outcome.missing_data += 1
                elif callable(main):
                    self._functions[name] = main
                    outcome.distributions += 1
                else:
                    outcome.incomplete += 1
        except Exception as exc:
            outcome.issue = exc
            logger.debug("registration aborted: %s", exc)
        logger.debug("registration finished: %s", outcome)
        if as_string:
            return outcome.format()
        return outcome

    def resolve(self, call_text: str) -> Tuple[str, AspectFunction]:
        # Longest registered prefix wins so overlapping names resolve the same
        # way on every run.
        best: Optional[str] = None
        for name in self._functions:
            if isinstance(name, str) and call_text.startswith(name) and (best is None or len(name) > len(best)):
                best = name
        if best is None:
            raise AspectInvalidFunction(f"No registered function matches '{call_text}'")
        return best, self._functions[best]

    def get(self, name: str) -> AspectFunction:
        try:
            return self._functions[name]
        except KeyError:
            raise AspectInvalidFunction(f"Unknown function '{name}'")

    def names(self) -> set[str]:
        return set(self._functions.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)


def _module_name(path: str) -> str:
    stem = re.sub(r"\W", "_", os.path.splitext(os.path.basename(path))[0])
    digest = hashlib.sha256(path.encode("utf-8")).hexdigest()[:12]
    return f"aspect_ext_{stem}_{digest}"


def load_extension(path: str) -> Tuple[str, Callable[[], Batch]]:
    """Execute an extension file and return its name and ``aspect_register``."""
    if not os.path.isfile(path):
        raise AspectExtensionError(f"Extension not found: {path}")
    if not path.endswith(".py"):
        raise AspectExtensionError(f"Extension must be a .py file: {path}")
    spec = importlib.util.spec_from_file_location(_module_name(path), path)
    if spec is None or spec.loader is None:
        raise AspectExtensionError(f"Failed to load extension module: {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise AspectExtensionError(f"Extension {path} failed to load: {exc}") from exc
    register = getattr(module, "aspect_register", None)
    if register is None or not callable(register):
        raise AspectExtensionError(f"Extension {path} must define callable aspect_register()")
    ext_name = str(getattr(module, "ASPECT_EXTENSION_NAME", os.path.splitext(os.path.basename(path))[0]))
    return ext_name, register


def expand_extension_paths(paths: Sequence[str]) -> List[str]:
    """Absolute extension paths, with ``.aspx`` pointer files expanded in place.

    A pointer file lists one path per line; ``#`` starts a comment and
    relative paths are taken from the pointer file's directory.
    """
    expanded: List[str] = []
    for path in map(os.path.abspath, paths):
        if not path.lower().endswith(".aspx"):
            expanded.append(path)
            continue
        if not os.path.isfile(path):
            raise AspectExtensionError(f".aspx file not found: {path}")
        base_dir = os.path.dirname(path)
        with open(path, "r", encoding="utf-8") as handle:
            for raw in handle:
                entry = raw.split("#", 1)[0].strip()
                if entry:
                    expanded.append(os.path.normpath(os.path.join(base_dir, entry)))
    return expanded


def load_extensions(registry: FunctionRegistry, paths: Sequence[str]) -> List[Tuple[str, RegistrationOutcome]]:
    """Load extension files into ``registry``.

    Each file must define ``aspect_register()`` returning a batch of
    ``{"name": ..., "main": ...}`` candidates.
    """
    results: List[Tuple[str, RegistrationOutcome]] = []
    for path in expand_extension_paths(paths):
        ext_name, register = load_extension(path)
        outcome = registry.register(register())
        logger.debug("extension %s: %s", ext_name, outcome)
        results.append((ext_name, outcome))  # type: ignore[arg-type]
    return results
