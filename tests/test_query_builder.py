import unittest
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.sql import operators
from sqlalchemy.sql.elements import BooleanClauseList

from app.schemas.query import Operator, ParsedQuery
from app.services.query_builder import build_query, column_map, parse_filter_key
from app.services.query_parser import parse_query


class _Base(DeclarativeBase):
    pass


class _Person(_Base):
    __tablename__ = "_qb_people"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    email: Mapped[str] = mapped_column(String(100))
    age: Mapped[int] = mapped_column(Integer)
    secret: Mapped[str] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    joined_at: Mapped[datetime] = mapped_column("joined", DateTime(timezone=False))


_core_metadata = MetaData()
_core_people = Table(
    "_qb_core_people",
    _core_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50)),
)


def _sql(expr) -> str:
    return str(expr.compile(compile_kwargs={"literal_binds": True}))


class FilterKeyTests(unittest.TestCase):
    def test_suffixes_map_to_operators(self):
        self.assertEqual(parse_filter_key("name_like"), ("name", Operator.like))
        self.assertEqual(parse_filter_key("age_gte"), ("age", Operator.gte))
        self.assertEqual(parse_filter_key("age_lte"), ("age", Operator.lte))
        self.assertEqual(parse_filter_key("age_gt"), ("age", Operator.gt))
        self.assertEqual(parse_filter_key("age_lt"), ("age", Operator.lt))
        self.assertEqual(parse_filter_key("age"), ("age", Operator.eq))

    def test_only_the_last_suffix_is_stripped(self):
        self.assertEqual(parse_filter_key("created_at_gte"), ("created_at", Operator.gte))
        self.assertEqual(parse_filter_key("title_like_lt"), ("title_like", Operator.lt))


class ColumnMapTests(unittest.TestCase):
    def test_mapped_class_uses_attribute_names(self):
        columns = column_map(_Person)
        self.assertIn("joined_at", columns)
        self.assertNotIn("joined", columns)

    def test_core_table_is_supported(self):
        self.assertEqual(set(column_map(_core_people)), {"id", "name"})

    def test_map_is_read_only(self):
        with self.assertRaises(TypeError):
            column_map(_Person)["extra"] = None


class BuildQueryPredicateTests(unittest.TestCase):
    def test_non_filterable_keys_are_ignored(self):
        parsed = ParsedQuery(filters={"name": "a", "age": "5"})
        built = build_query(_Person, parsed, filterable=["name"])
        self.assertIn("name", _sql(built.where))
        self.assertNotIn("age", _sql(built.where))

    def test_gte_builds_typed_comparison(self):
        parsed = ParsedQuery(filters={"age_gte": "18"})
        built = build_query(_Person, parsed, filterable=["age"])
        self.assertIs(built.where.operator, operators.ge)
        self.assertEqual(built.where.left.key, "age")
        self.assertEqual(built.where.right.value, 18)

    def test_gt_and_lte_build_typed_comparisons(self):
        parsed = ParsedQuery(filters={"age_gt": "20", "age_lte": "65"})
        built = build_query(_Person, parsed, filterable=["age"])
        lower, upper = built.where.clauses
        self.assertIs(lower.operator, operators.gt)
        self.assertEqual(lower.left.key, "age")
        self.assertEqual(lower.right.value, 20)
        self.assertIs(upper.operator, operators.le)
        self.assertEqual(upper.left.key, "age")
        self.assertEqual(upper.right.value, 65)

    def test_multiple_eq_values_are_or_joined(self):
        parsed = ParsedQuery(filters={"name": ["a", "b"]})
        built = build_query(_Person, parsed, filterable=["name"])
        self.assertIsInstance(built.where, BooleanClauseList)
        self.assertIs(built.where.operator, operators.or_)
        self.assertEqual(_sql(built.where), "_qb_people.name = 'a' OR _qb_people.name = 'b'")

    def test_distinct_keys_are_and_joined(self):
        parsed = ParsedQuery(filters={"name": "a", "age_lt": "30"})
        built = build_query(_Person, parsed, filterable=["name", "age"])
        self.assertIs(built.where.operator, operators.and_)
        self.assertEqual(_sql(built.where), "_qb_people.name = 'a' AND _qb_people.age < 30")

    def test_like_wraps_value_in_wildcards(self):
        parsed = ParsedQuery(filters={"name_like": "ann"})
        built = build_query(_Person, parsed, filterable=["name"])
        self.assertIn("'%ann%'", _sql(built.where))

    def test_non_strict_mode_accepts_any_real_column(self):
        parsed = ParsedQuery(filters={"secret": "x", "nope": "y"})
        built = build_query(_Person, parsed, strict_filters=False)
        self.assertEqual(_sql(built.where), "_qb_people.secret = 'x'")

    def test_whitelisted_but_unknown_column_is_skipped(self):
        parsed = ParsedQuery(filters={"ghost": "x"})
        built = build_query(_Person, parsed, filterable=["ghost"])
        self.assertIsNone(built.where)

    def test_empty_value_list_is_skipped(self):
        parsed = ParsedQuery(filters={"name": []})
        built = build_query(_Person, parsed, filterable=["name"])
        self.assertIsNone(built.where)

    def test_uncoercible_value_is_passed_through(self):
        parsed = ParsedQuery(filters={"age": "abc"})
        built = build_query(_Person, parsed, filterable=["age"])
        self.assertEqual(built.where.right.value, "abc")

    def test_search_ors_searchable_columns_and_ands_with_filters(self):
        parsed = ParsedQuery(search="jo", filters={"age": "30"})
        built = build_query(_Person, parsed, searchable=["name", "email", "ghost"], filterable=["age"])
        sql = _sql(built.where)
        self.assertIs(built.where.operator, operators.and_)
        self.assertIn("_qb_people.age = 30", sql)
        self.assertIn("lower(_qb_people.name) LIKE lower('%jo%')", sql)
        self.assertIn("lower(_qb_people.email) LIKE lower('%jo%')", sql)
        self.assertNotIn("ghost", sql)

    def test_search_without_searchable_columns_is_ignored(self):
        built = build_query(_Person, ParsedQuery(search="jo"))
        self.assertIsNone(built.where)


class BuildQueryOrderingTests(unittest.TestCase):
    def test_sort_outside_whitelist_is_ignored(self):
        built = build_query(_Person, ParsedQuery(sort="secret"), sortable=["name"])
        self.assertIsNone(built.order_by)

    def test_whitelisted_sort_honours_direction(self):
        built = build_query(_Person, ParsedQuery(sort="name", order="desc"), sortable=["name"])
        self.assertEqual(_sql(built.order_by), "_qb_people.name DESC")

    def test_whitelisted_but_unknown_sort_is_ignored(self):
        built = build_query(_Person, ParsedQuery(sort="ghost"), sortable=["ghost"])
        self.assertIsNone(built.order_by)


class BuildQueryWindowTests(unittest.TestCase):
    def test_offset_from_page_and_limit(self):
        built = build_query(_Person, ParsedQuery(page=3, limit=20))
        self.assertEqual(built.offset, 40)
        self.assertEqual(built.limit, 20)

    def test_page_round_trips_through_offset(self):
        for page in (1, 2, 7, 50):
            for limit in (1, 20, 100):
                built = build_query(_Person, ParsedQuery(page=page, limit=limit))
                self.assertEqual(built.offset, (page - 1) * limit)
                self.assertEqual(built.page, page)


class BuildQueryExecutionTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine("sqlite+pysqlite:///:memory:")
        _Base.metadata.create_all(cls.engine)
        with Session(cls.engine) as session:
            session.add_all(
                [
                    _Person(id=1, name="Ann", email="ann@example.com", age=17, secret="s1", is_active=True, joined_at=datetime(2026, 1, 1, 9)),
                    _Person(id=2, name="Bob", email="bob@example.com", age=18, secret="s2", is_active=False, joined_at=datetime(2026, 2, 1, 9)),
                    _Person(id=3, name="Joanna", email="jo@example.com", age=40, secret="s3", is_active=True, joined_at=datetime(2026, 3, 1, 9)),
                ]
            )
            session.commit()

    @classmethod
    def tearDownClass(cls):
        cls.engine.dispose()

    def _ids(self, raw, **options):
        built = build_query(_Person, parse_query(raw), **options)
        stmt = select(_Person.id)
        if built.where is not None:
            stmt = stmt.where(built.where)
        stmt = stmt.order_by(built.order_by if built.order_by is not None else _Person.id)
        with Session(self.engine) as session:
            return list(session.scalars(stmt))

    def test_gte_filter_selects_adults(self):
        self.assertEqual(self._ids({"age_gte": "18"}, filterable=["age"]), [2, 3])

    def test_gt_and_lte_bound_a_range(self):
        self.assertEqual(self._ids({"age_gt": "17", "age_lte": "40"}, filterable=["age"]), [2, 3])
        self.assertEqual(self._ids({"age_gt": "18"}, filterable=["age"]), [3])
        self.assertEqual(self._ids({"age_lte": "18"}, filterable=["age"]), [1, 2])

    def test_in_semantics_for_repeated_values(self):
        self.assertEqual(self._ids({"name": ["Ann", "Joanna"]}, filterable=["name"]), [1, 3])

    def test_boolean_filter_values_are_coerced(self):
        self.assertEqual(self._ids({"is_active": "false"}, filterable=["is_active"]), [2])

    def test_datetime_filter_values_are_coerced(self):
        self.assertEqual(self._ids({"joined_at_lt": "2026-02-15"}, filterable=["joined_at"]), [1, 2])

    def test_like_is_case_insensitive(self):
        self.assertEqual(self._ids({"name_like": "JO"}, filterable=["name"]), [3])

    def test_search_spans_columns(self):
        self.assertEqual(self._ids({"search": "bob"}, searchable=["name", "email"]), [2])

    def test_range_on_one_key_ors_values(self):
        self.assertEqual(self._ids({"age_lt": ["18", "41"]}, filterable=["age"]), [1, 2, 3])

    def test_sort_desc(self):
        self.assertEqual(self._ids({"sort": "age", "order": "desc"}, sortable=["age"]), [3, 2, 1])


if __name__ == "__main__":
    unittest.main()
