# tests/test_identity.py
import pytest
from marshmallow import ValidationError

from models.identity import (
    ExistingCopy,
    IdentityCheck,
    IdentityResolver,
    classify,
    next_copy_number,
    session_lookup,
)


def copy(id, title="Dune", isbn="111", number=1, authors=("a1",)):
    return ExistingCopy(id, title, isbn, number, tuple(authors))


def stub_lookup(records):
    """Lookup capability over a fixed list, filtering on isbn like the real one."""
    return lambda isbn: [r for r in records if r.isbn == isbn]


class TestClassify:
    def test_no_existing_records_is_unique(self):
        assert classify("Dune", "111", ["a1"], None, []) is IdentityCheck.UNIQUE

    def test_same_work_is_an_extra_copy(self):
        existing = [copy("b1")]
        assert classify("Dune", "111", ["a1"], None, existing) is IdentityCheck.DUPLICATE_OF_EXISTING_COPY

    def test_author_order_does_not_matter(self):
        existing = [copy("b1", authors=("a2", "a1"))]
        assert classify("Dune", "111", ["a1", "a2"], None, existing) is IdentityCheck.DUPLICATE_OF_EXISTING_COPY

    def test_same_title_and_isbn_with_other_authors_conflicts(self):
        existing = [copy("b1", authors=("a1",))]
        assert classify("Dune", "111", ["a2"], None, existing) is IdentityCheck.CONFLICTS_WITH_DIFFERENT_BOOK

    def test_same_isbn_with_other_title_conflicts(self):
        existing = [copy("b1", title="Emma")]
        assert classify("Dune", "111", ["a1"], None, existing) is IdentityCheck.CONFLICTS_WITH_DIFFERENT_BOOK

    def test_exact_match_wins_over_unrelated_clashes(self):
        existing = [copy("b1", authors=("a9",)), copy("b2", authors=("a1",))]
        assert classify("Dune", "111", ["a1"], None, existing) is IdentityCheck.DUPLICATE_OF_EXISTING_COPY

    def test_record_being_updated_is_ignored(self):
        existing = [copy("b1", authors=("a1",))]
        assert classify("Dune", "111", ["a2"], "b1", existing) is IdentityCheck.UNIQUE

    def test_other_isbns_are_ignored(self):
        existing = [copy("b1", isbn="222", authors=("a9",))]
        assert classify("Dune", "111", ["a1"], None, existing) is IdentityCheck.UNIQUE


class TestNextCopyNumber:
    def test_first_copy_is_one(self):
        assert next_copy_number("Dune", "111", ["a1"], []) == 1

    def test_max_plus_one(self):
        existing = [copy("b1", number=1), copy("b2", number=4), copy("b3", number=2)]
        assert next_copy_number("Dune", "111", ["a1"], existing) == 5

    def test_only_the_exact_work_counts(self):
        existing = [copy("b1", number=7, authors=("a2",)), copy("b2", number=2)]
        assert next_copy_number("Dune", "111", ["a1"], existing) == 3

    def test_empty_author_set_short_circuits(self):
        assert next_copy_number("Dune", "111", [], [copy("b1", number=3)]) == 1


class TestIdentityResolver:
    def test_check_raises_on_conflict(self):
        resolver = IdentityResolver(stub_lookup([copy("b1", title="Emma")]))
        with pytest.raises(ValidationError) as exc:
            resolver.check("Dune", "111", ["a1"])
        assert exc.value.messages == {"isbn": ["has already been taken"]}

    def test_check_returns_result_when_allowed(self):
        resolver = IdentityResolver(stub_lookup([copy("b1")]))
        assert resolver.check("Dune", "111", ["a1"]) is IdentityCheck.DUPLICATE_OF_EXISTING_COPY

    def test_assign_copy_number_uses_lookup(self):
        resolver = IdentityResolver(stub_lookup([copy("b1", number=1), copy("b2", number=2)]))
        assert resolver.assign_copy_number("Dune", "111", ["a1"]) == 3

    def test_assign_copy_number_without_authors(self):
        calls = []
        resolver = IdentityResolver(lambda isbn: calls.append(isbn) or [])
        assert resolver.assign_copy_number("Dune", "111", []) == 1
        assert calls == []

    def test_check_copy_number_clash(self):
        resolver = IdentityResolver(stub_lookup([copy("b1", number=1), copy("b2", number=2)]))
        with pytest.raises(ValidationError) as exc:
            resolver.check_copy_number("Dune", "111", 2, excluding_id="b9")
        assert exc.value.messages == {"copy_number": ["copy 2 of this book already exists"]}

    def test_check_copy_number_ignores_self_and_free_numbers(self):
        resolver = IdentityResolver(stub_lookup([copy("b1", number=1)]))
        resolver.check_copy_number("Dune", "111", 1, excluding_id="b1")
        resolver.check_copy_number("Dune", "111", 2, excluding_id="b9")


class TestSessionLookup:
    def test_returns_author_sets_from_join_table(self, session, make_author, make_book):
        a1, a2 = make_author("Ann"), make_author("Bob")
        book = make_book(title="Dune", isbn="111", authors=[a2, a1])
        make_book(title="Other", isbn="222")

        found = session_lookup(session)("111")

        assert len(found) == 1
        assert found[0].id == book.id
        assert found[0].copy_number == 1
        assert found[0].author_ids == tuple(sorted([a1.id, a2.id]))

    def test_unknown_isbn(self, session):
        assert session_lookup(session, lock=True)("nope") == []

    def test_resolver_against_database(self, session, make_author, make_book):
        author = make_author()
        make_book(title="Dune", isbn="111", authors=[author], copy_number=1)
        make_book(title="Dune", isbn="111", authors=[author], copy_number=2)

        resolver = IdentityResolver(session_lookup(session))
        assert resolver.assign_copy_number("Dune", "111", [author.id]) == 3
