"""
Composable table filters.

A TableFilter renders to a parameterized OData filter for Azure Table
queries (values are bound by the SDK through `parameters=`) and evaluates
the same condition against an in-memory entity dictionary.
"""

from typing import Any, Callable, Dict, Iterable, Optional, Tuple

Parameters = Dict[str, Any]


class TableFilter:
    """Equality predicate tree over entity columns."""

    def __init__(
        self,
        render: Callable[[Parameters], str],
        predicate: Callable[[Dict[str, Any]], bool]
    ):
        self._render = render
        self._predicate = predicate

    @classmethod
    def eq(cls, column: str, value: Any) -> "TableFilter":
        if isinstance(value, (bool, str)):
            def render(parameters: Parameters) -> str:
                name = f"p{len(parameters)}"
                parameters[name] = value
                return f"{column} eq @{name}"
        elif isinstance(value, int):
            # The SDK binds 0 and 1 parameters as booleans, so integers stay literal.
            literal = f"{column} eq {int(value)}"

            def render(parameters: Parameters) -> str:
                return literal
        else:
            raise TypeError(f"Unsupported filter value type: {type(value).__name__}")

        if isinstance(value, bool):
            # bool is an int subclass; keep True from matching a stored 1
            return cls(render, lambda entity: entity.get(column) is value)
        return cls(render, lambda entity: entity.get(column) == value)

    @classmethod
    def all_of(cls, filters: Iterable["TableFilter"]) -> Optional["TableFilter"]:
        combined = None
        for item in filters:
            combined = item if combined is None else combined & item
        return combined

    @classmethod
    def any_of(cls, filters: Iterable["TableFilter"]) -> Optional["TableFilter"]:
        combined = None
        for item in filters:
            combined = item if combined is None else combined | item
        return combined

    # Placeholders must stay space-delimited for the SDK's substitution.
    def _combine(self, operator: str, other: "TableFilter") -> Callable[[Parameters], str]:
        left, right = self, other

        def render(parameters: Parameters) -> str:
            return f"( {left._render(parameters)} ) {operator} ( {right._render(parameters)} )"
        return render

    def __and__(self, other: "TableFilter") -> "TableFilter":
        left, right = self, other
        return TableFilter(
            self._combine("and", other),
            lambda entity: left.matches(entity) and right.matches(entity)
        )

    def __or__(self, other: "TableFilter") -> "TableFilter":
        left, right = self, other
        return TableFilter(
            self._combine("or", other),
            lambda entity: left.matches(entity) or right.matches(entity)
        )

    def to_query(self) -> Tuple[str, Parameters]:
        """Return the filter expression and its bound parameters."""
        parameters: Parameters = {}
        expression = self._render(parameters)
        return expression, parameters

    def matches(self, entity: Dict[str, Any]) -> bool:
        return bool(self._predicate(entity))

    def __str__(self) -> str:
        return self.to_query()[0]

    def __repr__(self) -> str:
        expression, parameters = self.to_query()
        return f"TableFilter({expression!r}, {parameters!r})"
