"""Aggregate statistics over a list of books."""

from collections import Counter, defaultdict


def total_likes(books):
    return sum(book.likes or 0 for book in books)


def favorite_book(books):
    """Book with the most likes; the first one wins on ties."""
    if not books:
        return None
    return max(books, key=lambda book: book.likes or 0)


def most_books(books):
    if not books:
        return None
    author, count = Counter(book.author for book in books).most_common(1)[0]
    return {"author": author, "books": count}


def most_likes(books):
    if not books:
        return None
    likes = defaultdict(int)
    for book in books:
        likes[book.author] += book.likes or 0
    author = max(likes, key=likes.get)
    return {"author": author, "likes": likes[author]}
