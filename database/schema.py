# ======================= META ===========================

meta_schema = '''
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
'''

# ======================= DECK ===========================

deck_schema = '''
    CREATE TABLE IF NOT EXISTS deck (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        tags TEXT NOT NULL DEFAULT '[]',    -- JSON array, order preserved
        lang_front TEXT,
        lang_back TEXT
    )
'''

# ======================= CARD ===========================

card_schema = '''
    CREATE TABLE IF NOT EXISTS card (
        id INTEGER PRIMARY KEY,
        deck_id INTEGER NOT NULL,

        -- Card content
        term TEXT NOT NULL,
        definition TEXT NOT NULL,
        example TEXT,
        notes TEXT,
        hyperlink TEXT,

        sort_order INTEGER NOT NULL DEFAULT 0,
        extra_json TEXT,

        FOREIGN KEY (deck_id) REFERENCES deck(id) ON DELETE CASCADE
    )
'''

# ======================= MEDIA ==========================

# file_name is stored bare; the 'media/' prefix exists only inside the archive
media_schema = '''
    CREATE TABLE IF NOT EXISTS media (
        id INTEGER PRIMARY KEY,
        file_name TEXT NOT NULL UNIQUE,
        kind TEXT NOT NULL CHECK (kind IN ('image', 'audio', 'video', 'other')),
        mime_type TEXT,
        card_id INTEGER,
        deck_wide INTEGER NOT NULL DEFAULT 0 CHECK (deck_wide IN (0, 1)),
        alt_text TEXT,
        caption TEXT,

        CHECK ((card_id IS NOT NULL AND deck_wide = 0) OR (card_id IS NULL AND deck_wide = 1)),
        FOREIGN KEY (card_id) REFERENCES card(id) ON DELETE CASCADE
    )
'''

# ======================= REVIEW STATE ===================

review_state_schema = '''
    CREATE TABLE IF NOT EXISTS review_state (
        card_id INTEGER PRIMARY KEY,

        -- SRS parameters; the ease floor is a scheduler setting, not a column rule
        due_utc TEXT NOT NULL,
        interval_days INTEGER NOT NULL DEFAULT 0 CHECK (interval_days >= 0),
        ease_factor REAL NOT NULL DEFAULT 2.5 CHECK (ease_factor > 0),
        reps INTEGER NOT NULL DEFAULT 0 CHECK (reps >= 0),
        lapses INTEGER NOT NULL DEFAULT 0 CHECK (lapses >= 0),
        last_review_utc TEXT,

        CHECK (last_review_utc IS NULL OR due_utc >= last_review_utc),
        FOREIGN KEY (card_id) REFERENCES card(id) ON DELETE CASCADE
    )
'''

# ======================= INDEXES ========================

index_schemas = [
    'CREATE INDEX IF NOT EXISTS idx_card_deck_order ON card (deck_id, sort_order)',
    'CREATE INDEX IF NOT EXISTS idx_media_card ON media (card_id)',
    'CREATE INDEX IF NOT EXISTS idx_media_deck_wide ON media (deck_wide)',
    'CREATE INDEX IF NOT EXISTS idx_review_state_due ON review_state (due_utc)',
]

all_schemas = [meta_schema, deck_schema, card_schema, media_schema, review_state_schema]

REQUIRED_TABLES = ('meta', 'deck', 'card', 'media', 'review_state')
