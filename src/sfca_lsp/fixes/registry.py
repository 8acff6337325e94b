"""
Fix generator registry.

Maps engine names to the generators that can fix their violations. The map
is validated once at startup so a typo in an engine name fails immediately
rather than silently never offering a fix.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional

from ..core.errors import UnknownEngineError
from .generators import FixGenerator


class FixGeneratorRegistry:
    """Registry for fix generators, keyed by engine."""

    def __init__(self):
        self._generators: Dict[str, List[FixGenerator]] = {}

    def register(self, engine: str, generator: FixGenerator) -> None:
        self._generators.setdefault(engine, []).append(generator)

    def generators_for(self, engine: str) -> List[FixGenerator]:
        return list(self._generators.get(engine, ()))

    def find(self, engine: str, command: str) -> Optional[FixGenerator]:
        """Return the generator behind `command` for an engine, if one is registered."""
        for generator in self._generators.get(engine, ()):
            if generator.command == command:
                return generator
        return None

    def engines(self) -> List[str]:
        return list(self._generators)

    def validate(self, known_engines: Iterable[str]) -> None:
        """
        Check that every registered engine is one the server knows.

        Raises:
            UnknownEngineError: Naming the first unknown engine.
        """
        known: FrozenSet[str] = frozenset(known_engines)
        for engine in self._generators:
            if engine not in known:
                raise UnknownEngineError(
                    f"Fix generator registered for unknown engine '{engine}'. "
                    f"Known engines: {', '.join(sorted(known))}"
                )
