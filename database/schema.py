# ======================= DECKS ==========================

deck_schema = '''
    CREATE TABLE IF NOT EXISTS decks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        created_at INTEGER NOT NULL
    )
'''

# ======================= CARDS ==========================

card_schema = '''
    CREATE TABLE IF NOT EXISTS cards (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        deck_id INTEGER NOT NULL,

        -- Card content
        front_text TEXT,
        front_image BLOB,
        back_text TEXT,
        back_image BLOB,

        -- SM-2 parameters
        created_at INTEGER NOT NULL,
        next_review_due INTEGER NOT NULL,
        interval INTEGER DEFAULT 0,
        ease_factor REAL DEFAULT 2.5,
        reviews INTEGER DEFAULT 0,

        FOREIGN KEY (deck_id) REFERENCES decks(id) ON DELETE CASCADE
    )
'''

# ======================= LOGS ===========================

log_schema = '''
    CREATE TABLE IF NOT EXISTS logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        card_id INTEGER NOT NULL,
        rating INTEGER NOT NULL,
        reviewed_at INTEGER NOT NULL,

        FOREIGN KEY (card_id) REFERENCES cards(id) ON DELETE CASCADE
    )
'''

index_schema = [
    'CREATE INDEX IF NOT EXISTS idx_cards_deck_due ON cards (deck_id, next_review_due)',
    'CREATE INDEX IF NOT EXISTS idx_logs_card ON logs (card_id)',
]

# ======================= MIGRATIONS =====================

# Applied on every open. A column that already exists fails with
# "duplicate column name", which counts as already migrated.
migrations = [
    'ALTER TABLE decks ADD COLUMN description TEXT',
]
