import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from book_catalog.errors import DuplicateId, NotBorrowed, NotFound, OutOfStock, ValidationFailed
from book_catalog.library import DEMO_BOOKS, Library, seed_demo_books


def _record(validator, **overrides):
    raw = {
        "title": "Ulysses",
        "author": "James Joyce",
        "ISBN": "9780199535675",
        "publishedDate": "1922-02-02",
        "genre": "Fiction",
        "copiesAvailable": 3,
    }
    raw.update(overrides)
    return validator.validate(raw).raise_for_errors()


def _state(lib, caller="default"):
    return [b.to_dict() for b in lib.list_books()], [l.to_dict() for l in lib.list_loans(caller)]


def test_add_list_and_get(lib, validator):
    assert lib.list_books() == []

    book = lib.add_book(_record(validator))
    assert book.id
    assert lib.get_book(book.id).title == "Ulysses"
    assert len(lib.list_books()) == 1


def test_add_assigns_fresh_ids(lib, validator):
    ids = {lib.add_book(_record(validator)).id for _ in range(20)}
    assert len(ids) == 20


def test_add_with_colliding_id(lib, validator):
    lib.add_book(_record(validator), book_id="7")
    with pytest.raises(DuplicateId):
        lib.add_book(_record(validator, title="Other"), book_id="7")
    assert lib.get_book("7").title == "Ulysses"


def test_returned_records_are_copies(lib, validator):
    book = lib.add_book(_record(validator))
    book.copies_available = 99
    lib.list_books()[0].title = "Changed"
    stored = lib.get_book(book.id)
    assert stored.copies_available == 3
    assert stored.title == "Ulysses"


def test_update_replaces_everything_but_id(lib, validator):
    book = lib.add_book(_record(validator))
    updated = lib.update_book(book.id, _record(validator, title="Dubliners", copiesAvailable=1, id="other"))
    assert updated.id == book.id
    assert updated.title == "Dubliners"
    assert lib.get_book(book.id).copies_available == 1


def test_update_missing(lib, validator):
    with pytest.raises(NotFound):
        lib.update_book("nope", _record(validator))


def test_delete(lib, validator):
    book = lib.add_book(_record(validator))
    lib.delete_book(book.id)
    assert lib.list_books() == []
    with pytest.raises(NotFound):
        lib.delete_book(book.id)
    with pytest.raises(NotFound):
        lib.get_book(book.id)


def test_borrow_then_return_restores_state(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=3))
    before = _state(lib)

    loan = lib.borrow(book.id, "default")
    assert loan.book_id == book.id
    assert loan.book.copies_available == 3  # snapshot taken before the decrement
    assert loan.borrowed_date.endswith("Z")
    assert lib.get_book(book.id).copies_available == 2
    assert lib.outstanding_loans(book.id) == 1

    lib.return_book(book.id, "default")
    assert _state(lib) == before


def test_total_copies_is_constant(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=2))
    assert lib.total_copies(book.id) == 2
    lib.borrow(book.id, "alice")
    assert lib.total_copies(book.id) == 2
    lib.borrow(book.id, "bob")
    assert lib.total_copies(book.id) == 2
    lib.return_book(book.id, "alice")
    assert lib.total_copies(book.id) == 2


def test_borrow_unknown_book(lib):
    with pytest.raises(NotFound):
        lib.borrow("missing", "default")


def test_borrow_out_of_stock_changes_nothing(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=0))
    before = _state(lib)
    with pytest.raises(OutOfStock):
        lib.borrow(book.id, "default")
    assert _state(lib) == before


def test_return_not_borrowed_changes_nothing(lib, validator):
    book = lib.add_book(_record(validator))
    lib.borrow(book.id, "alice")
    before = _state(lib, "alice")
    with pytest.raises(NotBorrowed):
        lib.return_book(book.id, "bob")
    with pytest.raises(NotBorrowed):
        lib.return_book("missing", "alice")
    assert _state(lib, "alice") == before


def test_loans_are_per_caller(lib, validator):
    book = lib.add_book(_record(validator))
    lib.borrow(book.id, "alice")
    assert len(lib.list_loans("alice")) == 1
    assert lib.list_loans("bob") == []


def test_same_caller_can_borrow_twice(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=3))
    lib.borrow(book.id, "alice")
    lib.borrow(book.id, "alice")
    assert len(lib.list_loans("alice")) == 2
    assert lib.get_book(book.id).copies_available == 1

    # one return closes exactly one loan
    lib.return_book(book.id, "alice")
    assert len(lib.list_loans("alice")) == 1
    assert lib.get_book(book.id).copies_available == 2


def test_return_closes_oldest_loan(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=3))
    first = lib.borrow(book.id, "alice")
    lib.update_book(book.id, _record(validator, title="Ulysses (annotated)", copiesAvailable=2))
    lib.borrow(book.id, "alice")

    returned = lib.return_book(book.id, "alice")
    assert returned == first
    assert [l.book.title for l in lib.list_loans("alice")] == ["Ulysses (annotated)"]


def test_update_leaves_loan_snapshots(lib, validator):
    book = lib.add_book(_record(validator))
    lib.borrow(book.id, "default")
    lib.update_book(book.id, _record(validator, title="Renamed", copiesAvailable=10))
    assert lib.list_loans("default")[0].book.title == "Ulysses"


def test_delete_leaves_loans_orphaned(lib, validator):
    book = lib.add_book(_record(validator))
    lib.borrow(book.id, "default")
    lib.delete_book(book.id)

    loans = lib.list_loans("default")
    assert len(loans) == 1 and loans[0].book_id == book.id

    # returning the orphan works and touches no catalog entry
    lib.return_book(book.id, "default")
    assert lib.list_loans("default") == []
    assert lib.list_books() == []


def test_concurrent_borrow_last_copy(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=1))
    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(caller):
        barrier.wait()
        try:
            lib.borrow(book.id, caller)
            outcomes.append("ok")
        except OutOfStock:
            outcomes.append("out")

    threads = [threading.Thread(target=attempt, args=(name,)) for name in ("alice", "bob")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "out"]
    assert lib.get_book(book.id).copies_available == 0


def test_many_threads_never_oversell(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=7))

    def attempt(i):
        try:
            lib.borrow(book.id, f"caller-{i}")
            return True
        except OutOfStock:
            return False

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(attempt, range(50)))

    assert results.count(True) == 7
    assert lib.get_book(book.id).copies_available == 0
    assert lib.total_copies(book.id) == 7


def test_concurrent_borrow_and_return_keep_totals(lib, validator):
    book = lib.add_book(_record(validator, copiesAvailable=5))

    def cycle(i):
        caller = f"caller-{i % 4}"
        for _ in range(25):
            try:
                lib.borrow(book.id, caller)
            except OutOfStock:
                continue
            lib.return_book(book.id, caller)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(cycle, range(8)))

    assert lib.get_book(book.id).copies_available == 5
    assert lib.outstanding_loans(book.id) == 0


def test_search_and_genres(seeded_lib):
    assert [b.title for b in seeded_lib.search_books("orwell")] == ["1984"]
    assert [b.id for b in seeded_lib.search_books("978006")] == ["1"]
    assert {b.id for b in seeded_lib.search_books(genre="Fiction")} == {"1", "3"}
    assert seeded_lib.search_books("physics", genre="Fiction") == []
    assert len(seeded_lib.search_books("")) == 3
    assert seeded_lib.list_genres() == ["Fiction", "Academic"]


def test_statistics(seeded_lib):
    seeded_lib.borrow("3", "alice")
    stats = seeded_lib.get_statistics()
    assert stats["total_books"] == 3
    assert stats["unique_authors"] == 3
    assert stats["copies_available"] == 3 + 5 + 1
    assert stats["active_loans"] == 1
    assert stats["borrowers"] == 1
    assert stats["genres"] == {"Fiction": 2, "Academic": 1}


def test_seed_demo_books_keeps_ids(seeded_lib):
    assert [b.id for b in seeded_lib.list_books()] == [b["id"] for b in DEMO_BOOKS]
    assert seeded_lib.get_book("2").genre == "Academic"


def test_seed_rejects_invalid_records(lib, validator):
    bad = [{"id": "9", "title": "Thin Physics", "author": "A", "ISBN": "9780470524633",
            "publishedDate": "2010-06-14", "genre": "Academic", "copiesAvailable": 2}]
    with pytest.raises(ValidationFailed):
        seed_demo_books(lib, validator, bad)
    assert lib.list_books() == []


def test_new_library_starts_empty():
    lib = Library()
    assert lib.list_books() == []
    assert lib.list_genres() == []
    assert lib.get_statistics()["active_loans"] == 0
