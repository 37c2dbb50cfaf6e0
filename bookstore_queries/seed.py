from __future__ import annotations
from typing import Any, List

from .models import Book

# Sample inventory the query sequence expects to find in the collection
SEED_BOOKS = [
    Book("To Kill a Mockingbird", "Harper Lee", "Fiction", 1960, 12.99, True, 336, "J. B. Lippincott & Co."),
    Book("1984", "George Orwell", "Dystopian", 1949, 10.99, True, 328, "Secker & Warburg"),
    Book("The Great Gatsby", "F. Scott Fitzgerald", "Fiction", 1925, 9.99, True, 180, "Charles Scribner's Sons"),
    Book("Brave New World", "Aldous Huxley", "Dystopian", 1932, 11.50, False, 311, "Chatto & Windus"),
    Book("The Hobbit", "J.R.R. Tolkien", "Fantasy", 1937, 14.99, True, 310, "George Allen & Unwin"),
    Book("The Catcher in the Rye", "J.D. Salinger", "Fiction", 1951, 8.99, True, 224, "Little, Brown and Company"),
    Book("Pride and Prejudice", "Jane Austen", "Romance", 1813, 7.99, True, 432, "T. Egerton, Whitehall"),
    Book("The Lord of the Rings", "J.R.R. Tolkien", "Fantasy", 1954, 19.99, True, 1178, "Allen & Unwin"),
    Book("Animal Farm", "George Orwell", "Political Satire", 1945, 8.50, False, 112, "Secker & Warburg"),
    Book("The Alchemist", "Paulo Coelho", "Fiction", 1988, 10.99, True, 197, "HarperOne"),
    Book("Moby Dick", "Herman Melville", "Adventure", 1851, 12.50, False, 635, "Harper & Brothers"),
    Book("Wuthering Heights", "Emily Brontë", "Gothic Fiction", 1847, 9.99, True, 342, "Thomas Cautley Newby"),
]


def seed_books(catalog: Any, books: List[Book] | None = None) -> List[Any]:
    """
    Insert sample books through `catalog` (a BookCatalog). Returns the
    inserted ids in input order. Records are copied, so SEED_BOOKS itself
    never gets ids assigned.
    """
    ids = []
    for book in (SEED_BOOKS if books is None else books):
        ids.append(catalog.insert_book(book.to_document()))
    return ids
