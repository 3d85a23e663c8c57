"""
Unit Tests - Statement Composition
"""
import pytest

from storefront.database.adapters.base import as_statement
from storefront.database.errors import StatementError
from storefront.database.sql import (
    Dialect,
    Fragment,
    Param,
    Statement,
    StatementKind,
    build,
    compose,
    count_placeholders,
    highest_placeholder,
    join,
    statement_from_text,
    strip_returning,
)


class TestCompose:
    """Tests for placeholder rendering"""

    def test_postgres_numbers_placeholders_in_order(self):
        """Test $n placeholders follow occurrence order"""
        fragment = Fragment(
            "SELECT * FROM products WHERE category = ", Param("Electronics"),
            " AND price >= ", Param(100),
        )

        text, params = compose(fragment, Dialect.POSTGRES)

        assert text == "SELECT * FROM products WHERE category = $1 AND price >= $2"
        assert params == ("Electronics", 100)

    def test_sqlite_uses_question_marks(self):
        """Test positional ? placeholders"""
        fragment = Fragment("SELECT * FROM products WHERE id = ", Param(7))

        text, params = compose(fragment, Dialect.SQLITE)

        assert text == "SELECT * FROM products WHERE id = ?"
        assert params == (7,)

    def test_nested_fragments_flatten(self):
        """Test nested fragments keep params aligned with placeholders"""
        inner = Fragment("a = ", Param(1), " AND b = ", Param(2))
        outer = Fragment("SELECT 1 WHERE ", inner, " AND c = ", Param(3))

        text, params = compose(outer, Dialect.POSTGRES)

        assert text == "SELECT 1 WHERE a = $1 AND b = $2 AND c = $3"
        assert params == (1, 2, 3)

    def test_repeated_param_gets_own_placeholder(self):
        """Test the same value used twice is bound twice"""
        pattern = Param("%usb%")
        fragment = Fragment("title LIKE ", pattern, " OR sku LIKE ", pattern)

        text, params = compose(fragment, Dialect.POSTGRES)

        assert text == "title LIKE $1 OR sku LIKE $2"
        assert params == ("%usb%", "%usb%")

    def test_join_skips_separator_before_first(self):
        """Test join only places separators between fragments"""
        joined = join(" AND ", [Fragment("a = ", Param(1)), Fragment("b = ", Param(2))])

        text, _ = compose(joined, Dialect.SQLITE)

        assert text == "a = ? AND b = ?"

    def test_empty_fragment_is_falsy(self):
        """Test an empty fragment renders nothing"""
        assert not Fragment()
        assert compose(Fragment(), Dialect.POSTGRES) == ("", ())


class TestBuild:
    """Tests for tagged statements"""

    def test_returning_appended_on_postgres(self):
        """Test native RETURNING clause"""
        stmt = build(
            Fragment("INSERT INTO products (sku) VALUES (", Param("A-1"), ")"),
            Dialect.POSTGRES,
            kind=StatementKind.INSERT,
            returning="id",
        )

        assert stmt.text.endswith("RETURNING id")
        assert stmt.returning is True
        assert stmt.kind is StatementKind.INSERT

    def test_returning_omitted_on_sqlite(self):
        """Test SQLite text carries no RETURNING but keeps the tag"""
        stmt = build(
            Fragment("INSERT INTO products (sku) VALUES (", Param("A-1"), ")"),
            Dialect.SQLITE,
            kind=StatementKind.INSERT,
            returning="id",
        )

        assert "RETURNING" not in stmt.text
        assert stmt.returning is True

    def test_default_kind_is_select(self):
        """Test plain builds are reads"""
        stmt = build(Fragment("SELECT 1"), Dialect.SQLITE)

        assert stmt.is_read
        assert stmt.returning is False


class TestStatementFromText:
    """Tests for raw statement classification"""

    @pytest.mark.parametrize("text,kind", [
        ("SELECT * FROM users", StatementKind.SELECT),
        ("  select 1", StatementKind.SELECT),
        ("WITH x AS (SELECT 1) SELECT * FROM x", StatementKind.SELECT),
        ("INSERT INTO users (username) VALUES ($1)", StatementKind.INSERT),
        ("UPDATE users SET role = $1", StatementKind.UPDATE),
        ("delete from users where id = ?", StatementKind.DELETE),
        ("CREATE TABLE IF NOT EXISTS t (id INTEGER)", StatementKind.DDL),
    ])
    def test_kind_from_leading_keyword(self, text, kind):
        """Test classification by leading keyword"""
        assert statement_from_text(text).kind is kind

    def test_leading_comment_ignored(self):
        """Test SQL comments before the keyword"""
        stmt = statement_from_text("-- fetch users\nSELECT * FROM users")

        assert stmt.kind is StatementKind.SELECT

    def test_returning_suffix_detected(self):
        """Test a trailing RETURNING marks a returning insert"""
        stmt = statement_from_text("INSERT INTO users (username) VALUES ($1) RETURNING id", ["bob"])

        assert stmt.returning is True
        assert stmt.params == ("bob",)

    def test_returning_inside_literal_not_detected(self):
        """Test the word RETURNING inside a value is not a clause"""
        stmt = statement_from_text("INSERT INTO notes (body) VALUES ('RETURNING soon')")

        assert stmt.returning is False

    def test_strip_returning(self):
        """Test RETURNING removal for backends without it"""
        assert strip_returning("INSERT INTO t (a) VALUES (?) RETURNING id") == "INSERT INTO t (a) VALUES (?)"


class TestAsStatement:
    """Tests for adapter input normalization"""

    def test_statement_passed_through(self):
        stmt = Statement(text="SELECT 1")

        assert as_statement(stmt) is stmt

    def test_params_with_statement_rejected(self):
        """Test params are only accepted alongside raw text"""
        with pytest.raises(StatementError):
            as_statement(Statement(text="SELECT 1"), [1])


class TestPlaceholderCounting:
    """Tests for placeholder helpers"""

    def test_count_ignores_string_literals(self):
        text = "SELECT * FROM t WHERE a = ? AND b = '?'"

        assert count_placeholders(text, Dialect.SQLITE) == 1

    def test_highest_placeholder(self):
        assert highest_placeholder("a = $1 AND b = $12 AND c = $3") == 12
        assert highest_placeholder("SELECT 1") == 0
