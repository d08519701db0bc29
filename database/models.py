"""
Typed records returned by the store.

Rows never leave database.database as sqlite3.Row objects; every query goes
through one of the from_row() mappings below.
"""
from dataclasses import dataclass
from sqlite3 import Row


@dataclass
class Deck:
    id: int
    name: str
    description: str
    created_at: int

    # Derived at query time, never stored
    card_count: int = 0
    due_count: int = 0
    new_count: int = 0
    learned_count: int = 0

    @classmethod
    def from_row(cls, row: Row) -> 'Deck':
        return cls(
            id=row['id'],
            name=row['name'],
            description=row['description'] or '',
            created_at=row['created_at'],
            card_count=row['card_count'] or 0,
            due_count=row['due_count'] or 0,
            new_count=row['new_count'] or 0,
            learned_count=row['learned_count'] or 0,
        )


@dataclass
class Card:
    id: int
    deck_id: int
    front_text: str
    back_text: str
    created_at: int
    next_review_due: int
    interval: int = 0
    ease_factor: float = 2.5
    reviews: int = 0
    front_image: bytes | None = None
    back_image: bytes | None = None

    @classmethod
    def from_row(cls, row: Row) -> 'Card':
        return cls(
            id=row['id'],
            deck_id=row['deck_id'],
            front_text=row['front_text'] or '',
            back_text=row['back_text'] or '',
            created_at=row['created_at'],
            next_review_due=row['next_review_due'],
            interval=row['interval'],
            ease_factor=row['ease_factor'],
            reviews=row['reviews'],
            front_image=_blob(row['front_image']),
            back_image=_blob(row['back_image']),
        )

    @property
    def is_new(self) -> bool:
        return self.reviews == 0

    def is_due(self, now: int) -> bool:
        return self.next_review_due <= now

    def content(self) -> 'CardContent':
        return CardContent(self.front_text, self.back_text, self.front_image, self.back_image)


@dataclass
class ReviewLog:
    id: int
    card_id: int
    rating: int
    reviewed_at: int

    @classmethod
    def from_row(cls, row: Row) -> 'ReviewLog':
        return cls(
            id=row['id'],
            card_id=row['card_id'],
            rating=row['rating'],
            reviewed_at=row['reviewed_at'],
        )


@dataclass
class CardContent:
    """The content half of a card, without identity or scheduling state."""
    front_text: str
    back_text: str = ''
    front_image: bytes | None = None
    back_image: bytes | None = None

    def has_front(self) -> bool:
        return bool((self.front_text or '').strip()) or bool(self.front_image)


def _blob(value) -> bytes | None:
    # Empty blobs count as no image
    if not value:
        return None
    return bytes(value)
