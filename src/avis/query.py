from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import sqlite3
from typing import Any, Sequence

from avis.models import parse_float
from avis.store import json_path


class SqlOperator(Enum):
    LIKE = "like"
    EQ = "="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    NE = "<>"

    @property
    def label(self) -> str:
        return "In" if self is SqlOperator.LIKE else self.value

    @classmethod
    def parse(cls, text: str) -> "SqlOperator":
        raw = text.strip().lower()
        aliases = {"in": cls.LIKE, "contains": cls.LIKE, "==": cls.EQ, "!=": cls.NE}
        if raw in aliases:
            return aliases[raw]
        for op in cls:
            if op.value == raw:
                return op
        raise ValueError(f"unknown operator: {text}")


class SqlOrder(Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(slots=True, frozen=True)
class Predicate:
    field: str
    value: str
    operator: SqlOperator = SqlOperator.LIKE


def _condition(pred: Predicate) -> tuple[str, list[Any]]:
    column = "json_extract(metadata, ?)"
    args: list[Any] = [json_path(pred.field)]

    if pred.operator is SqlOperator.LIKE:
        args.append(f"%{pred.value}%")
        return f"{column} LIKE ?", args

    # A filter operand that parses as a float switches the comparison to numeric,
    # otherwise it stays a plain string comparison.
    number = parse_float(pred.value)
    if number is not None:
        args.append(number)
        return f"{column} + 0 {pred.operator.value} ?", args

    args.append(pred.value)
    return f"{column} {pred.operator.value} ?", args


def build_query(
    predicates: Sequence[Predicate],
    order_field: str = "",
    order: SqlOrder = SqlOrder.ASC,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    args: list[Any] = []
    for pred in predicates:
        if not pred.value:
            continue
        clause, clause_args = _condition(pred)
        clauses.append(clause)
        args.extend(clause_args)

    sql = "SELECT DISTINCT path FROM file"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    if order_field:
        sql += f" ORDER BY json_extract(metadata, ?) {order.value}"
        args.append(json_path(order_field))
    return sql, args


def query_paths(
    conn: sqlite3.Connection,
    predicates: Sequence[Predicate],
    order_field: str = "",
    order: SqlOrder = SqlOrder.ASC,
) -> list[str]:
    sql, args = build_query(predicates, order_field, order)
    return [str(r["path"]) for r in conn.execute(sql, args).fetchall()]
