def test_list_books_is_public(client, make_book):
    make_book(title='First')
    make_book(title='Second')

    response = client.get('/api/books')

    assert response.status_code == 200
    assert [book['title'] for book in response.json()] == ['First', 'Second']


def test_list_books_paginated(client, make_book):
    for i in range(5):
        make_book(title=f'Book {i}')

    data = client.get('/api/books', params={'page': 2, 'limit': 2}).json()

    assert data['total'] == 5
    assert data['page'] == 2
    assert data['limit'] == 2
    assert data['totalPages'] == 3
    assert [book['title'] for book in data['items']] == ['Book 2', 'Book 3']


def test_tutor_creates_book_with_defaults(client, make_user, auth_headers):
    tutor = make_user(role='tutor')

    response = client.post(
        '/api/books',
        json={'title': 'Matilda', 'url': 'https://example.com/matilda.jpg'},
        headers=auth_headers(tutor),
    )

    assert response.status_code == 201
    data = response.json()
    assert data['author'] == 'Unknown Author'
    assert data['likes'] == 0
    assert data['user']['id'] == tutor.id
    assert data['lending'] == {
        'isLent': False, 'borrower': None, 'lentDate': None, 'dueDate': None,
    }
    assert data['lendingHistory'] == []


def test_plain_user_cannot_create_book(client, make_user, auth_headers):
    response = client.post(
        '/api/books',
        json={'title': 'Matilda', 'url': 'https://example.com/matilda.jpg'},
        headers=auth_headers(make_user()),
    )

    assert response.status_code == 403
    assert 'error' in response.json()


def test_create_book_requires_title_and_url(client, make_user, auth_headers):
    response = client.post(
        '/api/books', json={'author': 'Roald Dahl'}, headers=auth_headers(make_user(role='admin'))
    )

    assert response.status_code == 400


def test_create_book_rejects_unknown_difficulty(client, make_user, auth_headers):
    response = client.post(
        '/api/books',
        json={'title': 'Matilda', 'url': 'u', 'difficulty': 'Impossible'},
        headers=auth_headers(make_user(role='admin')),
    )

    assert response.status_code == 400


def test_create_book_without_token(client):
    response = client.post('/api/books', json={'title': 'Matilda', 'url': 'u'})

    assert response.status_code == 401
    assert response.json() == {'error': 'token missing'}


def test_any_user_can_like_a_book(client, make_user, make_book, auth_headers):
    book = make_book(likes=2)

    response = client.put(
        f'/api/books/{book.id}', json={'likes': 3}, headers=auth_headers(make_user())
    )

    assert response.status_code == 200
    assert response.json()['likes'] == 3


def test_plain_user_cannot_edit_metadata(client, make_user, make_book, auth_headers):
    book = make_book(title='Original')

    response = client.put(
        f'/api/books/{book.id}',
        json={'title': 'Changed', 'likes': 1},
        headers=auth_headers(make_user()),
    )

    assert response.status_code == 403
    assert client.get(f'/api/books/{book.id}').json()['title'] == 'Original'


def test_tutor_can_edit_metadata(client, make_user, make_book, auth_headers):
    book = make_book()

    response = client.put(
        f'/api/books/{book.id}',
        json={'title': 'Changed', 'difficulty': 'Advanced', 'language': 'Portuguese'},
        headers=auth_headers(make_user(role='tutor')),
    )

    assert response.status_code == 200
    data = response.json()
    assert data['title'] == 'Changed'
    assert data['difficulty'] == 'Advanced'
    assert data['language'] == 'Portuguese'


def test_update_missing_book(client, make_user, auth_headers):
    response = client.put('/api/books/999', json={'likes': 1}, headers=auth_headers(make_user()))

    assert response.status_code == 404


def test_owner_deletes_book(client, make_user, make_book, auth_headers):
    tutor = make_user(role='tutor')
    book = make_book(owner=tutor)

    response = client.delete(f'/api/books/{book.id}', headers=auth_headers(tutor))

    assert response.status_code == 204
    assert client.get(f'/api/books/{book.id}').status_code == 404


def test_staff_cannot_delete_someone_elses_book(client, make_user, make_book, auth_headers):
    book = make_book(owner=make_user(role='tutor'))

    response = client.delete(f'/api/books/{book.id}', headers=auth_headers(make_user(role='admin')))

    assert response.status_code == 403


def test_plain_user_cannot_delete_own_book(client, make_user, make_book, auth_headers):
    user = make_user()
    book = make_book(owner=user)

    response = client.delete(f'/api/books/{book.id}', headers=auth_headers(user))

    assert response.status_code == 403


def test_book_stats(client, make_book):
    make_book(title='A', author='Dahl', likes=5)
    make_book(title='B', author='Dahl', likes=1)
    make_book(title='C', author='Rowling', likes=7)

    data = client.get('/api/books/stats').json()

    assert data['totalLikes'] == 13
    assert data['favoriteBook']['title'] == 'C'
    assert data['mostBooks'] == {'author': 'Dahl', 'books': 2}
    assert data['mostLikes'] == {'author': 'Rowling', 'likes': 7}
