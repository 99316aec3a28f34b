"""Validator contract and registry.

A validator is any callable ``run(cell_text, location)`` returning zero or
more :class:`RuleFinding`.  Validators must not keep state between cells so
the orchestrator can run them on any thread.  Envelope fields (``id``, the
location, the original text and the marked text) are filled in by the
orchestrator, not by the rule.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from backend.core.schema import CellLocation, Severity

from .highlight import context_window


@dataclass(slots=True)
class RuleFinding:
    type: str
    severity: Severity
    message: str
    rule: str
    confidence: float | None = None
    suggestion: str | None = None
    highlight_range: tuple[int, int] | None = None
    context_before: str | None = None
    context_after: str | None = None

    @classmethod
    def at(
        cls,
        text: str,
        start: int,
        end: int,
        *,
        with_context: bool = False,
        **fields: object,
    ) -> "RuleFinding":
        """Build a finding pointing at ``text[start:end]``."""

        finding = cls(highlight_range=(start, end), **fields)  # type: ignore[arg-type]
        if with_context:
            finding.context_before, finding.context_after = context_window(text, start, end)
        return finding


ValidatorFn = Callable[[str, CellLocation], Iterable[RuleFinding]]


@dataclass(frozen=True, slots=True)
class ValidatorDescriptor:
    """A registered rule; ``categories=None`` means it runs for every file."""

    name: str
    run: ValidatorFn
    categories: frozenset[str] | None = None
    fatal: bool = False

    def applies_to(self, category: str | None) -> bool:
        return self.categories is None or (category is not None and category in self.categories)


class ValidatorRegistry:
    """Ordered collection of validator descriptors."""

    def __init__(self) -> None:
        self._descriptors: list[ValidatorDescriptor] = []
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        run: ValidatorFn,
        *,
        categories: Iterable[str] | None = None,
        fatal: bool = False,
    ) -> ValidatorDescriptor:
        descriptor = ValidatorDescriptor(
            name=name,
            run=run,
            categories=frozenset(categories) if categories is not None else None,
            fatal=fatal,
        )
        with self._lock:
            if any(existing.name == name for existing in self._descriptors):
                raise ValueError(f"validator {name!r} is already registered")
            self._descriptors.append(descriptor)
        return descriptor

    def validator(
        self,
        name: str,
        *,
        categories: Iterable[str] | None = None,
        fatal: bool = False,
    ) -> Callable[[ValidatorFn], ValidatorFn]:
        def decorator(func: ValidatorFn) -> ValidatorFn:
            self.register(name, func, categories=categories, fatal=fatal)
            return func

        return decorator

    def unregister(self, name: str) -> None:
        with self._lock:
            self._descriptors = [item for item in self._descriptors if item.name != name]

    def resolve(self, category: str | None) -> list[ValidatorDescriptor]:
        """Validators applicable to ``category`` in registration order."""

        with self._lock:
            return [item for item in self._descriptors if item.applies_to(category)]

    def names(self) -> list[str]:
        with self._lock:
            return [item.name for item in self._descriptors]

    def __iter__(self) -> Iterator[ValidatorDescriptor]:
        with self._lock:
            return iter(list(self._descriptors))

    def __len__(self) -> int:
        return len(self._descriptors)
