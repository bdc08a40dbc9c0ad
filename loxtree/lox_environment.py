"""
Slot-addressed lexical environments.

A scope is an append-only list of (name, value) slots plus a link to its
enclosing scope. Resolved variable accesses never search by name: they walk
`distance` links and index straight into the slot list. The global namespace
is not an Environment; it lives on the evaluator as a plain mapping.
"""
from typing import Any, List, Optional


class ScopeMismatch(Exception):
    """An address computed by the resolver does not exist at runtime.

    This is an internal contract violation between the resolver and the
    evaluator, never a user-facing error.
    """
    def __init__(self, distance: int, index: int):
        super().__init__(f"No slot at distance {distance}, index {index}.")
        self.distance = distance
        self.index = index


class Environment:
    """One lexical scope: ordered slots and a non-owning enclosing link."""

    __slots__ = ("enclosing", "values")

    def __init__(self, enclosing: Optional['Environment'] = None):
        self.enclosing = enclosing
        # Each slot is a two-item list so assignment can update it in place.
        self.values: List[list] = []

    def define(self, name: str, value: Any) -> int:
        """Appends a slot and returns its index."""
        self.values.append([name, value])
        return len(self.values) - 1

    def ancestor(self, distance: int) -> 'Environment':
        environment = self
        for _ in range(distance):
            environment = environment.enclosing
            if environment is None:
                raise ScopeMismatch(distance, -1)
        return environment

    def get(self, distance: int, index: int) -> Any:
        return self._slot(distance, index)[1]

    def assign(self, value: Any, distance: int, index: int):
        self._slot(distance, index)[1] = value

    def _slot(self, distance: int, index: int) -> list:
        values = self.ancestor(distance).values
        if not 0 <= index < len(values):
            raise ScopeMismatch(distance, index)
        return values[index]

    @property
    def size(self) -> int:
        return len(self.values)

    def names(self) -> List[str]:
        """Slot names in definition order (debugging aid)."""
        return [name for name, _ in self.values]

    def __repr__(self) -> str:
        names = ', '.join(self.names())
        parent_id = f", enclosing=#{id(self.enclosing)}" if self.enclosing else ""
        return f"<Environment slots=[{names}]{parent_id}>"
