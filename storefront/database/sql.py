"""
Statement Composition

Statements are assembled from fragments holding literal SQL text and
``Param`` markers. A single fold, ``compose``, renders the markers into the
placeholder syntax of the target dialect and collects the parameter values
in the same order, so placeholder count and parameter order can never drift.

Example:
    where = Fragment("category = ", Param("Electronics"))
    stmt = build(Fragment("SELECT * FROM products WHERE ", where), Dialect.POSTGRES)
    stmt.text    # "SELECT * FROM products WHERE category = $1"
    stmt.params  # ("Electronics",)
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union


class Dialect(str, Enum):
    """Placeholder and type conventions of a backend"""
    POSTGRES = "postgresql"
    SQLITE = "sqlite"

    def placeholder(self, index: int) -> str:
        """Placeholder for the 1-based parameter ``index``"""
        if self is Dialect.POSTGRES:
            return f"${index}"
        return "?"

    @property
    def supports_returning(self) -> bool:
        return self is Dialect.POSTGRES


class StatementKind(str, Enum):
    """Dispatch tag carried by every statement"""
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    DDL = "ddl"


@dataclass(frozen=True)
class Param:
    """A bound value; rendered as one placeholder per occurrence"""
    value: Any


Part = Union[str, Param, "Fragment"]


@dataclass(frozen=True)
class Fragment:
    """An ordered run of SQL text, params and nested fragments"""
    parts: Tuple[Part, ...] = ()

    def __init__(self, *parts: Part):
        object.__setattr__(self, "parts", tuple(parts))

    def __add__(self, other: Part) -> "Fragment":
        return Fragment(*self.parts, other)

    def __bool__(self) -> bool:
        return bool(self.parts)

    def iter_parts(self) -> Iterable[Union[str, Param]]:
        for part in self.parts:
            if isinstance(part, Fragment):
                yield from part.iter_parts()
            else:
                yield part


def join(separator: str, fragments: Iterable[Part]) -> Fragment:
    """Join fragments with a literal separator"""
    parts: List[Part] = []
    for fragment in fragments:
        if parts:
            parts.append(separator)
        parts.append(fragment)
    return Fragment(*parts)


def compose(fragment: Fragment, dialect: Dialect) -> Tuple[str, Tuple[Any, ...]]:
    """
    Render a fragment for a dialect.

    Every ``Param`` takes the next placeholder index; its value is appended
    to the params at the same moment.

    Returns:
        (text, params) where params match placeholders in occurrence order
    """
    chunks: List[str] = []
    params: List[Any] = []
    for part in fragment.iter_parts():
        if isinstance(part, Param):
            params.append(part.value)
            chunks.append(dialect.placeholder(len(params)))
        else:
            chunks.append(part)
    return "".join(chunks), tuple(params)


@dataclass(frozen=True)
class Statement:
    """
    A rendered statement plus the tag adapters dispatch on.

    ``returning`` marks an INSERT whose caller expects the new row id back.
    On PostgreSQL the text carries a native ``RETURNING`` clause; on SQLite it
    does not and the adapter synthesizes ``[{"id": lastrowid}]``.
    """
    text: str
    params: Tuple[Any, ...] = ()
    kind: StatementKind = StatementKind.SELECT
    returning: bool = False
    dialect: Optional[Dialect] = None

    @property
    def is_read(self) -> bool:
        return self.kind is StatementKind.SELECT


def build(
    fragment: Fragment,
    dialect: Dialect,
    kind: StatementKind = StatementKind.SELECT,
    returning: Optional[str] = None,
) -> Statement:
    """
    Compose a fragment into a ``Statement``.

    Args:
        fragment: Statement body
        dialect: Target dialect
        kind: Dispatch tag
        returning: Column list for ``RETURNING``; only emitted where the
            dialect supports it natively
    """
    text, params = compose(fragment, dialect)
    if returning and dialect.supports_returning:
        text = f"{text} RETURNING {returning}"
    return Statement(
        text=text,
        params=params,
        kind=kind,
        returning=bool(returning),
        dialect=dialect,
    )


_LEADING_KEYWORD = re.compile(r"^\s*(?:--[^\n]*\n\s*)*([A-Za-z]+)")
_RETURNING_SUFFIX = re.compile(r"\s+RETURNING\s+[\w\s,.*\"]+?;?\s*$", re.IGNORECASE)
_KIND_BY_KEYWORD = {
    "SELECT": StatementKind.SELECT,
    "WITH": StatementKind.SELECT,
    "PRAGMA": StatementKind.SELECT,
    "INSERT": StatementKind.INSERT,
    "UPDATE": StatementKind.UPDATE,
    "DELETE": StatementKind.DELETE,
}


def statement_from_text(text: str, params: Sequence[Any] = ()) -> Statement:
    """
    Classify raw statement text written by hand.

    The kind comes from the leading keyword (case-insensitive); a trailing
    ``RETURNING <cols>`` suffix marks a returning write. Anything that is
    not a read or a DML write is treated as DDL.
    """
    match = _LEADING_KEYWORD.match(text)
    keyword = match.group(1).upper() if match else ""
    kind = _KIND_BY_KEYWORD.get(keyword, StatementKind.DDL)
    returning = kind is not StatementKind.SELECT and bool(_RETURNING_SUFFIX.search(text))
    return Statement(text=text, params=tuple(params), kind=kind, returning=returning)


def strip_returning(text: str) -> str:
    """Remove a trailing ``RETURNING <cols>`` clause"""
    return _RETURNING_SUFFIX.sub("", text)


def count_placeholders(text: str, dialect: Dialect) -> int:
    """Number of placeholders in rendered text (string literals excluded)"""
    bare = re.sub(r"'(?:[^']|'')*'", "''", text)
    if dialect is Dialect.POSTGRES:
        return len(re.findall(r"\$\d+", bare))
    return bare.count("?")


def highest_placeholder(text: str) -> int:
    """Largest ``$n`` index in PostgreSQL text, 0 if none"""
    numbers = [int(n) for n in re.findall(r"\$(\d+)", text)]
    return max(numbers, default=0)
