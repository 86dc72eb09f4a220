import pytest
from flash_querystream import (
    InvalidArgumentError,
    NoActiveContextError,
    NotASubqueryError,
    Ref,
    UnsupportedCombinationError,
    current_query_info,
)
from flash_querystream.context import query_depth
from sqlalchemy import func

from .models import Category, Product


class TestScalarSubquery:
    def test_as_subquery(self, qb):
        """An uncorrelated stream becomes a scalar sub-select over an alias."""
        average = qb.stream(Product).map(lambda p: func.avg(p.price))
        query = qb.stream(Product).filter(
            lambda p: p.price > average.as_subquery()
        ).to_criteria_query()

        sql = str(query.statement)
        assert "products.price > (SELECT avg(products_1.price)" in sql
        assert "FROM products AS products_1)" in sql

    def test_outside_of_build(self, qb):
        with pytest.raises(NoActiveContextError, match="containing query"):
            qb.stream(Product).as_subquery()
        with pytest.raises(NoActiveContextError):
            qb.stream(Product).exists()

    def test_nested_frame_visible_while_configuring(self, qb):
        """The subquery is the current frame while its own chain runs."""
        frames = []

        def record(selection):
            frames.append((query_depth(), current_query_info().is_subquery))

        inner = qb.stream(Category).peek(record).map("id")
        qb.stream(Product).peek(record).filter(
            lambda p: p.category_id == inner.as_subquery()
        ).to_criteria_query()

        assert frames == [(1, False), (2, True)]
        assert query_depth() == 0

    def test_ref_from_enclosing_query(self, qb):
        """A subquery may use an expression bound by the enclosing query."""
        category = Ref()
        query = (
            qb.stream(Category)
            .bind(category)
            .filter(
                lambda c: qb.stream(Product)
                .filter(lambda p: p.category_id == category.get().id)
                .exists()
            )
            .to_criteria_query()
        )

        sql = str(query.statement)
        assert "EXISTS (SELECT" in sql
        assert "products_1.category_id = categories.id" in sql
        assert sql.count("FROM categories") == 1


class TestCorrelatedSubstream:
    def test_exists_through_relationship(self, qb):
        """substream() correlates with the enclosing root and joins from it."""
        query = qb.stream(Product).filter(
            lambda p: qb.substream(p)
            .join("reviews")
            .filter(lambda r: r.rating < 2)
            .exists()
        ).to_criteria_query()

        sql = str(query.statement)
        assert "WHERE EXISTS (SELECT" in sql
        assert "FROM reviews AS reviews_1" in sql
        assert "reviews_1.rating < :rating_1" in sql
        assert "products.id = reviews_1.product_id" in sql
        assert sql.count("FROM products") == 1

    def test_not_exists(self, qb):
        query = qb.stream(Product).filter(
            lambda p: ~qb.substream(p).join("reviews").exists()
        ).to_criteria_query()
        assert "NOT (EXISTS" in str(query.statement)

    def test_top_level_substream(self, qb):
        """A substream cannot be built as the outermost query."""
        with pytest.raises(NotASubqueryError, match="can only be used in subqueries"):
            qb.substream(Product).to_criteria_query()
        assert query_depth() == 0

    def test_substream_of_plain_value(self, qb):
        with pytest.raises(InvalidArgumentError, match="not a mapped entity"):
            qb.substream("products")
        with pytest.raises(InvalidArgumentError, match="null root"):
            qb.substream(None)

    def test_outer_join_from_correlated_root(self, qb):
        stream = qb.stream(Product).filter(
            lambda p: qb.substream(p).join("reviews", outer=True).exists()
        )
        with pytest.raises(InvalidArgumentError, match="outer joins"):
            stream.to_criteria_query()


class TestSubqueryRestrictions:
    def test_limit_in_subquery(self, qb):
        inner = qb.stream(Product).map(lambda p: func.max(p.price)).limit(1)
        stream = qb.stream(Product).filter(lambda p: p.price == inner.as_subquery())

        with pytest.raises(UnsupportedCombinationError, match="invoke limit"):
            stream.to_criteria_query()
        assert query_depth() == 0

    def test_skip_in_subquery(self, qb):
        inner = qb.stream(Product).skip(1)
        stream = qb.stream(Product).filter(lambda p: inner.exists())

        with pytest.raises(UnsupportedCombinationError, match="invoke skip"):
            stream.to_criteria_query()

    def test_sort_in_subquery(self, qb):
        inner = qb.stream(Product).order_by("name")
        stream = qb.stream(Product).filter(lambda p: inner.exists())

        with pytest.raises(UnsupportedCombinationError, match="sort a subquery"):
            stream.to_criteria_query()

    def test_group_in_subquery(self, qb):
        inner = qb.stream(Product).group_by("category_id").map("category_id")
        stream = qb.stream(Category).filter(lambda c: c.id == inner.as_subquery())

        with pytest.raises(UnsupportedCombinationError, match="group a subquery"):
            stream.to_criteria_query()
        assert query_depth() == 0
