from typing import Any, Literal, NamedTuple, Optional, TypedDict

Query = str
Row = dict[str, Any]

BooleanOperator = Literal["AND", "OR"]
JoinType = Literal["INNER", "LEFT", "RIGHT"]
SortDirection = Literal["ASC", "DESC"]

HookEvent = Literal[
    "before_create",
    "after_create",
    "before_update",
    "after_update",
    "before_delete",
    "after_delete",
]


class QueryResult(NamedTuple):
    insert_id: Optional[int]
    affected_rows: int


class ColumnInfo(TypedDict):
    name: str
    native_type: str
    nullable: bool
    key: str
    default: Any
    extra: str


class ColumnDefinition(TypedDict, total=False):
    name: str
    type: str
    native_type: str
    primary_key: bool
    auto_increment: bool
    nullable: bool
    unique: bool
    default: Any
    comment: str


class TableSchema(TypedDict, total=False):
    table_name: str
    columns: list[ColumnDefinition]
    comment: str
