from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence, Union
from loguru import logger

from fastorm.errors import ConfigurationError, DatabaseConnectionError
from fastorm.types import BooleanOperator, JoinType, Row, SortDirection

if TYPE_CHECKING:
    from fastorm.connection import Connection

_MISSING: Any = object()

LIST_OPERATORS = ("IN", "NOT IN")
RANGE_OPERATORS = ("BETWEEN", "NOT BETWEEN")
NULL_OPERATORS = ("IS NULL", "IS NOT NULL")


@dataclass(frozen=True)
class BasicPredicate:
    column: str
    operator: str
    value: Any = None
    boolean: BooleanOperator = "AND"


@dataclass(frozen=True)
class GroupPredicate:
    children: tuple["Predicate", ...]
    boolean: BooleanOperator = "AND"


@dataclass(frozen=True)
class RawPredicate:
    sql: str
    params: tuple[Any, ...] = ()
    boolean: BooleanOperator = "AND"


Predicate = Union[BasicPredicate, GroupPredicate, RawPredicate]


@dataclass(frozen=True)
class JoinSpec:
    type: JoinType
    table: str
    on_sql: str
    on_params: tuple[Any, ...] = ()


def _normalize_operator(operator: str) -> str:
    return " ".join(operator.split()).upper()


def compile_basic(predicate: BasicPredicate) -> tuple[str, list[Any]]:
    operator = _normalize_operator(predicate.operator)

    if operator in LIST_OPERATORS:
        values = list(predicate.value)
        placeholders = ", ".join("?" for _ in values)
        return f"{predicate.column} {operator} ({placeholders})", values

    if operator in RANGE_OPERATORS:
        low, high = predicate.value
        return f"{predicate.column} {operator} ? AND ?", [low, high]

    if operator in NULL_OPERATORS:
        return f"{predicate.column} {operator}", []

    return f"{predicate.column} {predicate.operator} ?", [predicate.value]


def compile_predicates(predicates: Sequence[Predicate]) -> tuple[str, list[Any]]:
    """Render a sibling sequence depth-first.

    The conjunction of the first node is never rendered. Parameters are
    collected in the same left-to-right order as their placeholders.
    """
    parts: list[str] = []
    params: list[Any] = []

    for index, predicate in enumerate(predicates):
        prefix = "" if index == 0 else f"{predicate.boolean} "

        if isinstance(predicate, BasicPredicate):
            sql, values = compile_basic(predicate)
        elif isinstance(predicate, GroupPredicate):
            nested_sql, values = compile_predicates(predicate.children)
            sql = f"({nested_sql})"
        elif isinstance(predicate, RawPredicate):
            sql, values = f"({predicate.sql})", list(predicate.params)
        else:
            raise TypeError(f"Unknown predicate type: {type(predicate).__name__}")

        parts.append(f"{prefix}{sql}")
        params.extend(values)

    return " ".join(parts), params


class QueryBuilder:
    """Fluent SELECT builder for one table.

    Every modifier mutates the builder and returns it, so calls can be
    chained. ``build_sql`` compiles the accumulated plan without changing it;
    the terminal coroutines (``get``, ``first``, ``count``, ``sum``, ``avg``)
    each run exactly one statement.

    >>> query = QueryBuilder("users", connection)
    >>> query.where("age", ">", 18).or_where("vip", "=", True).build_sql()
    ('SELECT * FROM users WHERE age > ? OR vip = ?', [18, True])
    """

    def __init__(self, table: str, connection: Optional["Connection"] = None):
        self.table = table
        self.connection = connection
        self.select_columns: list[str] = ["*"]
        self.wheres: list[Predicate] = []
        self.joins: list[JoinSpec] = []
        self.group_by_columns: list[str] = []
        self.havings: list[BasicPredicate] = []
        self.order_by_conditions: list[tuple[str, SortDirection]] = []
        self.limit_value: Optional[int] = None
        self.offset_value: Optional[int] = None

    def _scoped(self, table: str) -> "QueryBuilder":
        return QueryBuilder(table, self.connection)

    def select(self, *columns: str) -> "QueryBuilder":
        self.select_columns = list(columns) if columns else ["*"]
        return self

    # --- WHERE ---

    def _add_group(self, callback: Callable[["QueryBuilder"], Any], boolean: BooleanOperator):
        nested = self._scoped(self.table)
        callback(nested)
        if nested.wheres:
            self.wheres.append(GroupPredicate(tuple(nested.wheres), boolean))

    def _add_where(
        self,
        column_or_callback: Union[str, Callable[["QueryBuilder"], Any]],
        operator: Optional[str],
        value: Any,
        boolean: BooleanOperator,
    ) -> "QueryBuilder":
        if callable(column_or_callback):
            self._add_group(column_or_callback, boolean)
        elif operator is not None and value is not _MISSING:
            self.wheres.append(BasicPredicate(column_or_callback, operator, value, boolean))
        else:
            logger.warning(
                f"Ignoring incomplete condition on {column_or_callback!r}: operator and value are required"
            )
        return self

    def where(self, column_or_callback, operator: Optional[str] = None, value: Any = _MISSING) -> "QueryBuilder":
        return self._add_where(column_or_callback, operator, value, "AND")

    def or_where(self, column_or_callback, operator: Optional[str] = None, value: Any = _MISSING) -> "QueryBuilder":
        return self._add_where(column_or_callback, operator, value, "OR")

    def where_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "IN", tuple(values), "AND"))
        return self

    def or_where_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "IN", tuple(values), "OR"))
        return self

    def where_not_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "NOT IN", tuple(values), "AND"))
        return self

    def or_where_not_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "NOT IN", tuple(values), "OR"))
        return self

    def where_null(self, column: str) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "IS NULL", None, "AND"))
        return self

    def or_where_null(self, column: str) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "IS NULL", None, "OR"))
        return self

    def where_not_null(self, column: str) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "IS NOT NULL", None, "AND"))
        return self

    def or_where_not_null(self, column: str) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "IS NOT NULL", None, "OR"))
        return self

    def where_between(self, column: str, low: Any, high: Any) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "BETWEEN", (low, high), "AND"))
        return self

    def or_where_between(self, column: str, low: Any, high: Any) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "BETWEEN", (low, high), "OR"))
        return self

    def where_not_between(self, column: str, low: Any, high: Any) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "NOT BETWEEN", (low, high), "AND"))
        return self

    def or_where_not_between(self, column: str, low: Any, high: Any) -> "QueryBuilder":
        self.wheres.append(BasicPredicate(column, "NOT BETWEEN", (low, high), "OR"))
        return self

    def where_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Append a trusted SQL fragment verbatim (parenthesized) with its own parameters"""
        self.wheres.append(RawPredicate(sql, tuple(params or ()), "AND"))
        return self

    def or_where_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        self.wheres.append(RawPredicate(sql, tuple(params or ()), "OR"))
        return self

    # --- JOIN ---

    def _add_join(
        self,
        join_type: JoinType,
        table: str,
        column_or_callback: Union[str, Callable[["QueryBuilder"], Any]],
        operator: Optional[str],
        second_column: Optional[str],
    ) -> "QueryBuilder":
        if callable(column_or_callback):
            join_builder = self._scoped(table)
            column_or_callback(join_builder)
            if not join_builder.wheres:
                raise ConfigurationError(f"Join on {table} produced no ON conditions")
            on_sql, on_params = compile_predicates(join_builder.wheres)
        else:
            if not operator or not second_column:
                raise ConfigurationError(
                    "For string-based join, operator and second_column are required"
                )
            on_sql, on_params = f"{column_or_callback} {operator} {second_column}", []

        self.joins.append(JoinSpec(join_type, table, on_sql, tuple(on_params)))
        return self

    def inner_join(self, table: str, column_or_callback, operator: Optional[str] = None, second_column: Optional[str] = None) -> "QueryBuilder":
        return self._add_join("INNER", table, column_or_callback, operator, second_column)

    def left_join(self, table: str, column_or_callback, operator: Optional[str] = None, second_column: Optional[str] = None) -> "QueryBuilder":
        return self._add_join("LEFT", table, column_or_callback, operator, second_column)

    def right_join(self, table: str, column_or_callback, operator: Optional[str] = None, second_column: Optional[str] = None) -> "QueryBuilder":
        return self._add_join("RIGHT", table, column_or_callback, operator, second_column)

    # --- Paging, ordering, grouping ---

    def limit(self, count: int) -> "QueryBuilder":
        self.limit_value = count
        return self

    def offset(self, count: int) -> "QueryBuilder":
        self.offset_value = count
        return self

    def order_by(self, column: str, direction: str = "ASC") -> "QueryBuilder":
        normalized = direction.upper()
        if normalized not in ("ASC", "DESC"):
            raise ConfigurationError(f"Invalid sort direction: {direction}")
        self.order_by_conditions.append((column, normalized))  # type: ignore[arg-type]
        return self

    def group_by(self, *columns: str) -> "QueryBuilder":
        self.group_by_columns = list(columns)
        return self

    def having(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self.havings.append(BasicPredicate(column, operator, value, "AND"))
        return self

    # --- Compilation ---

    def build_sql(self) -> tuple[str, list[Any]]:
        sql = f"SELECT {', '.join(self.select_columns)} FROM {self.table}"
        params: list[Any] = []

        for join in self.joins:
            sql += f" {join.type} JOIN {join.table} ON {join.on_sql}"
            params.extend(join.on_params)

        if self.wheres:
            where_sql, where_params = compile_predicates(self.wheres)
            sql += f" WHERE {where_sql}"
            params.extend(where_params)

        if self.group_by_columns:
            sql += f" GROUP BY {', '.join(self.group_by_columns)}"

        if self.havings:
            having_parts = []
            for condition in self.havings:
                having_parts.append(f"{condition.column} {condition.operator} ?")
                params.append(condition.value)
            sql += f" HAVING {' AND '.join(having_parts)}"

        if self.order_by_conditions:
            order_parts = [f"{column} {direction}" for column, direction in self.order_by_conditions]
            sql += f" ORDER BY {', '.join(order_parts)}"

        if self.limit_value is not None:
            sql += " LIMIT ?"
            params.append(self.limit_value)
        if self.offset_value is not None:
            sql += " OFFSET ?"
            params.append(self.offset_value)

        return sql, params

    # --- Execution ---

    async def get(self) -> list[Row]:
        if self.connection is None:
            raise DatabaseConnectionError(f"Query on {self.table} has no connection")
        sql, params = self.build_sql()
        return await self.connection.query(sql, params)  # type: ignore[return-value]

    async def first(self) -> Optional[Row]:
        self.limit(1)
        rows = await self.get()
        return rows[0] if rows else None

    async def _aggregate(self, function: str, column: str, alias: str) -> Any:
        self.select_columns = [f"{function}({column}) AS {alias}"]
        rows = await self.get()
        value = rows[0].get(alias) if rows else None
        return value if value is not None else 0

    async def count(self, column: str = "*") -> int:
        return await self._aggregate("COUNT", column, "count")

    async def sum(self, column: str) -> float:
        return await self._aggregate("SUM", column, "sum")

    async def avg(self, column: str) -> float:
        return await self._aggregate("AVG", column, "avg")
