from datetime import datetime, timedelta

import pytest

from schoolhub.core.exceptions import (
    BookAlreadyLent,
    BookNotLent,
    BorrowLimitReached,
    NotFoundError,
    PermissionDenied,
)
from schoolhub.services import lending


def parse(value):
    return datetime.fromisoformat(value)


def test_borrow_sets_loan_and_appends_history(client, make_user, make_book, auth_headers):
    user = make_user()
    book = make_book()

    response = client.put(f'/api/books/{book.id}/lend', json={}, headers=auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data['lending']['isLent'] is True
    assert data['lending']['borrower'] == user.id
    assert len(data['lendingHistory']) == 1
    entry = data['lendingHistory'][0]
    assert entry['borrower'] == user.id
    assert entry['isReturned'] is False
    assert entry['returnedDate'] is None


def test_due_date_is_exactly_21_days_after_lent_date(client, make_user, make_book, auth_headers):
    user = make_user()
    book = make_book()

    data = client.put(f'/api/books/{book.id}/lend', headers=auth_headers(user)).json()

    lent = parse(data['lending']['lentDate'])
    due = parse(data['lending']['dueDate'])
    assert due - lent == timedelta(days=21)
    assert parse(data['lendingHistory'][0]['dueDate']) - lent == timedelta(days=21)


def test_cannot_borrow_a_lent_book(client, make_user, make_book, auth_headers):
    first, second = make_user(), make_user()
    book = make_book()

    assert client.put(f'/api/books/{book.id}/lend', headers=auth_headers(first)).status_code == 200
    response = client.put(f'/api/books/{book.id}/lend', headers=auth_headers(second))

    assert response.status_code == 400
    assert response.json() == {'error': 'book is already lent out'}


def test_third_loan_allowed_fourth_rejected(client, make_user, make_book, auth_headers):
    user = make_user()
    books = [make_book() for _ in range(4)]
    headers = auth_headers(user)

    for book in books[:2]:
        assert client.put(f'/api/books/{book.id}/lend', headers=headers).status_code == 200

    assert client.put(f'/api/books/{books[2].id}/lend', headers=headers).status_code == 200

    response = client.put(f'/api/books/{books[3].id}/lend', headers=headers)
    assert response.status_code == 400
    assert 'up to 3 books' in response.json()['error']


def test_rejected_borrow_writes_nothing(client, db_session, make_user, make_book, auth_headers):
    user = make_user()
    for _ in range(3):
        lending.lend_book(db_session, make_book().id, user)
    book = make_book()

    client.put(f'/api/books/{book.id}/lend', headers=auth_headers(user))

    db_session.refresh(book)
    assert book.is_lent is False
    assert book.lending_history == []


def test_staff_borrowing_for_themselves_is_not_limited(db_session, make_user, make_book):
    tutor = make_user(role='tutor')
    for _ in range(4):
        book = lending.lend_book(db_session, make_book().id, tutor)
        assert book.borrower_id == tutor.id
    assert lending.count_active_loans(db_session, tutor.id) == 4


def test_staff_can_lend_to_another_user(client, make_user, make_book, auth_headers):
    admin, student = make_user(role='admin'), make_user()
    book = make_book()

    response = client.put(
        f'/api/books/{book.id}/lend',
        json={'borrowerId': student.id},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json()['lending']['borrower'] == student.id


def test_lending_to_another_user_checks_their_limit(db_session, make_user, make_book):
    tutor, user = make_user(role='tutor'), make_user()
    for _ in range(3):
        lending.lend_book(db_session, make_book().id, user)

    with pytest.raises(BorrowLimitReached):
        lending.lend_book(db_session, make_book().id, tutor, borrower_id=user.id)


def test_plain_user_cannot_lend_to_someone_else(client, make_user, make_book, auth_headers):
    user, other = make_user(), make_user()
    book = make_book()

    response = client.put(
        f'/api/books/{book.id}/lend',
        json={'borrowerId': other.id},
        headers=auth_headers(user),
    )

    assert response.status_code == 403


def test_lend_missing_book(db_session, make_user):
    with pytest.raises(NotFoundError):
        lending.lend_book(db_session, 999, make_user())


def test_return_closes_history_entry_and_resets_lending(client, make_user, make_book, auth_headers):
    user = make_user()
    book = make_book()
    headers = auth_headers(user)
    client.put(f'/api/books/{book.id}/lend', headers=headers)

    response = client.put(f'/api/books/{book.id}/return', headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data['lending'] == {
        'isLent': False, 'borrower': None, 'lentDate': None, 'dueDate': None,
    }
    assert len(data['lendingHistory']) == 1
    entry = data['lendingHistory'][0]
    assert entry['isReturned'] is True
    assert entry['returnedDate'] is not None


def test_return_by_non_borrower_is_forbidden(client, make_user, make_book, auth_headers):
    borrower, other = make_user(), make_user(role='tutor')
    book = make_book()
    client.put(f'/api/books/{book.id}/lend', headers=auth_headers(borrower))

    response = client.put(f'/api/books/{book.id}/return', headers=auth_headers(other))

    assert response.status_code == 403
    assert client.get(f'/api/books/{book.id}').json()['lending']['isLent'] is True


def test_admin_return_closes_the_borrowers_entry(db_session, make_user, make_book):
    admin, user = make_user(role='admin'), make_user()
    book = make_book()
    lending.lend_book(db_session, book.id, user)

    book = lending.return_book(db_session, book.id, admin)

    assert book.is_lent is False
    assert book.lending_history[0].borrower_id == user.id
    assert book.lending_history[0].is_returned is True


def test_return_available_book_fails(db_session, make_user, make_book):
    with pytest.raises(BookNotLent):
        lending.return_book(db_session, make_book().id, make_user(role='admin'))


def test_each_cycle_appends_one_entry(db_session, make_user, make_book):
    first, second = make_user(), make_user()
    book = make_book()

    lending.lend_book(db_session, book.id, first)
    lending.return_book(db_session, book.id, first)
    lending.lend_book(db_session, book.id, second)

    history = book.lending_history
    assert [record.borrower_id for record in history] == [first.id, second.id]
    assert [record.is_returned for record in history] == [True, False]

    with pytest.raises(BookAlreadyLent):
        lending.lend_book(db_session, book.id, first)
    assert len(book.lending_history) == 2


def test_clear_history_keeps_current_loan(client, make_user, make_book, auth_headers):
    admin, user = make_user(role='admin'), make_user()
    book = make_book()
    client.put(f'/api/books/{book.id}/lend', headers=auth_headers(user))
    client.put(f'/api/books/{book.id}/return', headers=auth_headers(user))
    lent = client.put(f'/api/books/{book.id}/lend', headers=auth_headers(user)).json()

    response = client.put(f'/api/books/{book.id}/clear-history', headers=auth_headers(admin))

    assert response.status_code == 200
    data = response.json()
    assert data['lendingHistory'] == []
    assert data['lending'] == lent['lending']


def test_clear_history_is_admin_only(db_session, make_user, make_book):
    with pytest.raises(PermissionDenied):
        lending.clear_history(db_session, make_book().id, make_user(role='tutor'))


def test_borrow_limit_is_a_live_count(db_session, make_user, make_book):
    user = make_user()
    books = [make_book() for _ in range(3)]
    for book in books:
        lending.lend_book(db_session, book.id, user)
    assert lending.count_active_loans(db_session, user.id) == 3

    lending.return_book(db_session, books[0].id, user)

    assert lending.count_active_loans(db_session, user.id) == 2
    lending.lend_book(db_session, make_book().id, user)


def test_staff_borrower_is_not_limited_when_lent_to(db_session, make_user, make_book):
    admin, tutor = make_user(role='admin'), make_user(role='tutor')
    for _ in range(3):
        lending.lend_book(db_session, make_book().id, tutor)

    book = lending.lend_book(db_session, make_book().id, admin, borrower_id=tutor.id)

    assert book.borrower_id == tutor.id
    assert lending.count_active_loans(db_session, tutor.id) == 4
