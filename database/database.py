import logging
import sqlite3
import threading
import time
from contextlib import contextmanager

from database.errors import NotFoundError, PersistenceError, ValidationError
from database.models import Card, CardContent, Deck, ReviewLog
from database.schema import deck_schema, card_schema, log_schema, index_schema, migrations
from database.snapshot import SnapshotSlot
from utils.srs import DEFAULT_EASE, RATINGS, schedule


def _now_ms() -> int:
    return int(time.time() * 1000)


DECK_SELECT = '''
    SELECT d.id, d.name, d.description, d.created_at,
           COUNT(c.id) AS card_count,
           SUM(CASE WHEN c.next_review_due <= :now THEN 1 ELSE 0 END) AS due_count,
           SUM(CASE WHEN c.reviews = 0 THEN 1 ELSE 0 END) AS new_count,
           SUM(CASE WHEN c.reviews > 0 THEN 1 ELSE 0 END) AS learned_count
    FROM decks d
    LEFT JOIN cards c ON c.deck_id = d.id
'''

CARD_INSERT = '''
    INSERT INTO cards (
        deck_id, front_text, front_image, back_text, back_image,
        created_at, next_review_due, interval, ease_factor, reviews
    ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, 0)
'''


class Store:
    """
    Decks, cards and review logs in an in-memory SQLite database.

    The whole database is serialized into the snapshot slot after every
    committed mutation, before the call returns. If that write fails, the
    in-memory database is put back to the last durable snapshot and
    PersistenceError is raised, so a failed call leaves nothing behind.

    One writer at a time: every operation holds the store lock.
    """

    def __init__(self, slot: SnapshotSlot | None = None, clock=None):
        self.slot = slot if slot is not None else SnapshotSlot()
        self.clock = clock or _now_ms
        self._conn: sqlite3.Connection | None = None
        self._durable: bytes | None = None
        self._lock = threading.RLock()

    # LIFECYCLE ==================================================

    def open(self) -> 'Store':
        with self._lock:
            if self._conn is not None:
                return self

            blob = self.slot.load()
            conn = sqlite3.connect(':memory:', isolation_level=None, check_same_thread=False)
            conn.row_factory = sqlite3.Row

            try:
                if blob is not None:
                    conn.deserialize(blob)
                version = conn.execute('PRAGMA schema_version').fetchone()[0]
                _init_schema(conn)
                conn.execute('PRAGMA foreign_keys = ON')
                changed = conn.execute('PRAGMA schema_version').fetchone()[0] != version
            except sqlite3.Error as e:
                conn.close()
                raise PersistenceError(f"Snapshot '{self.slot.key}' is unreadable: {e}") from e

            self._conn = conn
            if blob is None or changed:
                try:
                    self._persist()
                except PersistenceError:
                    self._conn = None
                    conn.close()
                    raise
            else:
                self._durable = blob

            logging.info(f"Opened store from {self.slot.path} ({'new' if blob is None else 'existing'} snapshot)")
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            self._durable = None
            logging.info("Closed store")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # DECKS ======================================================

    def create_deck(self, name: str, description: str = '') -> int:
        name = _require_name(name)
        with self._transaction() as conn:
            cursor = conn.execute(
                'INSERT INTO decks (name, description, created_at) VALUES (?, ?, ?)',
                (name, description or '', self.clock())
            )
            deck_id = cursor.lastrowid
        logging.info(f"Created deck {deck_id}: {name!r}")
        return deck_id

    def update_deck(self, deck_id: int, name: str, description: str | None = None) -> None:
        name = _require_name(name)
        with self._transaction() as conn:
            _require_deck(conn, deck_id)
            if description is None:
                conn.execute('UPDATE decks SET name = ? WHERE id = ?', (name, deck_id))
            else:
                conn.execute(
                    'UPDATE decks SET name = ?, description = ? WHERE id = ?',
                    (name, description, deck_id)
                )
        logging.info(f"Updated deck {deck_id}: {name!r}")

    def delete_deck(self, deck_id: int) -> None:
        with self._lock:
            if not _deck_exists(self._require_open(), deck_id):
                logging.debug(f"Delete of missing deck {deck_id} ignored")
                return

            with self._transaction() as conn:
                conn.execute(
                    'DELETE FROM logs WHERE card_id IN (SELECT id FROM cards WHERE deck_id = ?)',
                    (deck_id,)
                )
                removed = conn.execute('DELETE FROM cards WHERE deck_id = ?', (deck_id,)).rowcount
                conn.execute('DELETE FROM decks WHERE id = ?', (deck_id,))
        logging.info(f"Deleted deck {deck_id} with {removed} cards")

    def get_deck(self, deck_id: int) -> Deck | None:
        with self._lock:
            row = self._require_open().execute(
                DECK_SELECT + ' WHERE d.id = :deck_id GROUP BY d.id',
                {'now': self.clock(), 'deck_id': deck_id}
            ).fetchone()
            return Deck.from_row(row) if row else None

    def list_decks(self) -> list[Deck]:
        """All decks, newest first, with counts computed from current card state."""
        with self._lock:
            rows = self._require_open().execute(
                DECK_SELECT + ' GROUP BY d.id ORDER BY d.created_at DESC, d.id DESC',
                {'now': self.clock()}
            ).fetchall()
            return [Deck.from_row(row) for row in rows]

    def create_deck_with_cards(self, name: str, description: str, contents: list[CardContent]) -> int:
        """Create a deck and all its cards in one transaction. Used by bundle import."""
        name = _require_name(name)
        now = self.clock()
        with self._transaction() as conn:
            cursor = conn.execute(
                'INSERT INTO decks (name, description, created_at) VALUES (?, ?, ?)',
                (name, description or '', now)
            )
            deck_id = cursor.lastrowid
            conn.executemany(CARD_INSERT, [_card_params(deck_id, content, now) for content in contents])
        logging.info(f"Created deck {deck_id}: {name!r} with {len(contents)} cards")
        return deck_id

    # CARDS ======================================================

    def get_cards(self, deck_id: int) -> list[Card]:
        with self._lock:
            rows = self._require_open().execute(
                'SELECT * FROM cards WHERE deck_id = ? ORDER BY created_at, id', (deck_id,)
            ).fetchall()
            return [Card.from_row(row) for row in rows]

    def get_due_cards(self, deck_id: int) -> list[Card]:
        with self._lock:
            rows = self._require_open().execute(
                '''SELECT * FROM cards
                   WHERE deck_id = ? AND next_review_due <= ?
                   ORDER BY next_review_due ASC, id ASC
                ''',
                (deck_id, self.clock())
            ).fetchall()
            return [Card.from_row(row) for row in rows]

    def get_card(self, card_id: int) -> Card | None:
        with self._lock:
            row = self._require_open().execute('SELECT * FROM cards WHERE id = ?', (card_id,)).fetchone()
            return Card.from_row(row) if row else None

    def create_card(self, deck_id: int, front_text: str, back_text: str = '',
                    front_image: bytes | None = None, back_image: bytes | None = None) -> int:
        return self.add_cards(deck_id, [CardContent(front_text or '', back_text or '', front_image, back_image)])[0]

    def add_cards(self, deck_id: int, contents: list[CardContent]) -> list[int]:
        """Insert several cards into one deck atomically, e.g. accepted AI suggestions."""
        for content in contents:
            _require_front(content)

        now = self.clock()
        card_ids = []
        with self._transaction() as conn:
            _require_deck(conn, deck_id)
            for content in contents:
                cursor = conn.execute(CARD_INSERT, _card_params(deck_id, content, now))
                card_ids.append(cursor.lastrowid)
        logging.info(f"Added {len(card_ids)} card(s) to deck {deck_id}")
        return card_ids

    def update_card(self, card: Card) -> None:
        """Replace the card's content. Scheduling fields on `card` are ignored."""
        _require_front(card.content())
        with self._transaction() as conn:
            cursor = conn.execute(
                '''UPDATE cards
                   SET front_text = ?, front_image = ?, back_text = ?, back_image = ?
                   WHERE id = ?
                ''',
                (card.front_text or '', _binary(card.front_image), card.back_text or '',
                 _binary(card.back_image), card.id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Card {card.id} does not exist")
        logging.info(f"Updated card {card.id}")

    def delete_card(self, card_id: int) -> None:
        with self._lock:
            if self.get_card(card_id) is None:
                logging.debug(f"Delete of missing card {card_id} ignored")
                return

            with self._transaction() as conn:
                conn.execute('DELETE FROM logs WHERE card_id = ?', (card_id,))
                conn.execute('DELETE FROM cards WHERE id = ?', (card_id,))
        logging.info(f"Deleted card {card_id}")

    # REVIEWS ====================================================

    def review_card(self, card_id: int, rating: int) -> Card:
        if type(rating) is not int or rating not in RATINGS:
            raise ValidationError(f"Rating must be one of {RATINGS}, got {rating!r}")

        now = self.clock()
        with self._transaction() as conn:
            row = conn.execute('SELECT * FROM cards WHERE id = ?', (card_id,)).fetchone()
            if row is None:
                raise NotFoundError(f"Card {card_id} does not exist")

            result = schedule(Card.from_row(row), rating, now)
            conn.execute(
                '''UPDATE cards
                   SET next_review_due = ?, interval = ?, ease_factor = ?, reviews = ?
                   WHERE id = ?
                ''',
                (result.next_review_due, result.interval, result.ease_factor, result.reviews, card_id)
            )
            conn.execute(
                'INSERT INTO logs (card_id, rating, reviewed_at) VALUES (?, ?, ?)',
                (card_id, rating, now)
            )
            updated = Card.from_row(conn.execute('SELECT * FROM cards WHERE id = ?', (card_id,)).fetchone())

        logging.info(f"Reviewed card {card_id}: rating={rating}, interval={result.interval}d, "
                     f"ease={result.ease_factor:.2f}, reviews={result.reviews}")
        return updated

    def get_review_logs(self, card_id: int) -> list[ReviewLog]:
        with self._lock:
            rows = self._require_open().execute(
                'SELECT * FROM logs WHERE card_id = ? ORDER BY reviewed_at, id', (card_id,)
            ).fetchall()
            return [ReviewLog.from_row(row) for row in rows]

    # STATS ======================================================

    def get_overview(self) -> dict[str, int]:
        """Totals across all decks for the study overview."""
        with self._lock:
            conn = self._require_open()
            row = conn.execute(
                '''SELECT
                       COUNT(*) AS cards,
                       SUM(next_review_due <= ?) AS due,
                       SUM(reviews = 0) AS new,
                       SUM(reviews > 0) AS learned
                   FROM cards
                ''',
                (self.clock(),)
            ).fetchone()
            decks = conn.execute('SELECT COUNT(*) FROM decks').fetchone()[0]
            stats = {k: (row[k] or 0) for k in row.keys()}
            stats['decks'] = decks
            return stats

    # INTERNALS ==================================================

    def _require_open(self) -> sqlite3.Connection:
        if self._conn is None:
            raise PersistenceError("Store is not open")
        return self._conn

    @contextmanager
    def _transaction(self):
        with self._lock:
            conn = self._require_open()
            conn.execute('BEGIN')
            try:
                yield conn
                conn.execute('COMMIT')
            except sqlite3.Error as e:
                _rollback(conn)
                raise PersistenceError(f"Transaction failed: {e}") from e
            except Exception:
                _rollback(conn)
                raise
            self._persist()

    def _persist(self) -> None:
        conn = self._require_open()
        blob = conn.serialize()
        try:
            self.slot.save(blob)
        except PersistenceError as e:
            logging.error(f"Snapshot write failed, reverting to last durable state: {e}")
            if self._durable is not None:
                conn.deserialize(self._durable)
                conn.execute('PRAGMA foreign_keys = ON')
            raise
        self._durable = blob


# HELPERS ========================================================

def _init_schema(conn: sqlite3.Connection) -> None:
    conn.execute(deck_schema)
    conn.execute(card_schema)
    conn.execute(log_schema)
    for statement in index_schema:
        conn.execute(statement)

    for statement in migrations:
        try:
            conn.execute(statement)
        except sqlite3.OperationalError as e:
            if 'duplicate column' not in str(e).lower():
                raise
            logging.debug(f"Migration already applied: {statement}")


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute('ROLLBACK')


def _deck_exists(conn: sqlite3.Connection, deck_id: int) -> bool:
    return conn.execute('SELECT 1 FROM decks WHERE id = ?', (deck_id,)).fetchone() is not None


def _require_deck(conn: sqlite3.Connection, deck_id: int) -> None:
    if not _deck_exists(conn, deck_id):
        raise NotFoundError(f"Deck {deck_id} does not exist")


def _require_name(name: str) -> str:
    name = (name or '').strip()
    if not name:
        raise ValidationError("Deck name must not be empty")
    return name


def _require_front(content: CardContent) -> None:
    if not content.has_front():
        raise ValidationError("Card needs front text or a front image")


def _binary(data: bytes | None):
    return sqlite3.Binary(data) if data else None


def _card_params(deck_id: int, content: CardContent, now: int) -> tuple:
    # New cards are due immediately
    return (
        deck_id,
        content.front_text or '',
        _binary(content.front_image),
        content.back_text or '',
        _binary(content.back_image),
        now,
        now,
        DEFAULT_EASE,
    )
