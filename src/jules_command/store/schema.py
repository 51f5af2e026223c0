"""Database schema for the command store.

Contains schema version and SQL for creating the database schema.
"""

# Schema version for migrations
# v1: sessions, activities, poll cursors, PR reviews
# v2: Added head_sha to pr_reviews (expected-head guard for merges)
# v3: jules_activities.created_at nullable (activities without a createTime)
SCHEMA_VERSION = 3

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Jules sessions (one row per delegated task)
CREATE TABLE IF NOT EXISTS jules_sessions (
    id TEXT PRIMARY KEY,
    title TEXT,
    prompt TEXT NOT NULL DEFAULT '',
    repo TEXT,
    source_branch TEXT,
    state TEXT NOT NULL,
    jules_url TEXT,
    pr_url TEXT,
    pr_title TEXT,
    error_reason TEXT,
    stall_detected_at TEXT,
    stall_reason TEXT,
    created_at TEXT,
    updated_at TEXT,
    completed_at TEXT,
    last_polled_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_jules_sessions_state ON jules_sessions(state);
CREATE INDEX IF NOT EXISTS idx_jules_sessions_created_at ON jules_sessions(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jules_sessions_repo ON jules_sessions(repo);

-- Activities emitted by sessions (append-only)
CREATE TABLE IF NOT EXISTS jules_activities (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    activity_type TEXT NOT NULL,
    originator TEXT NOT NULL,
    message TEXT,
    progress_title TEXT,
    progress_description TEXT,
    has_bash_output INTEGER NOT NULL DEFAULT 0,
    has_changeset INTEGER NOT NULL DEFAULT 0,
    files_changed TEXT,  -- JSON array
    lines_added INTEGER NOT NULL DEFAULT 0,
    lines_deleted INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    FOREIGN KEY (session_id) REFERENCES jules_sessions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_jules_activities_session_created
    ON jules_activities(session_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jules_activities_type ON jules_activities(session_id, activity_type);

-- Per-session poll bookkeeping
CREATE TABLE IF NOT EXISTS poll_cursors (
    id TEXT PRIMARY KEY,
    poll_type TEXT NOT NULL DEFAULT 'session',
    last_poll_at TEXT,
    last_activity_seen_at TEXT,
    last_page_token TEXT,
    poll_count INTEGER NOT NULL DEFAULT 0,
    consecutive_unchanged INTEGER NOT NULL DEFAULT 0,
    error_count INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);

-- Pull requests produced by sessions, with evaluation state
CREATE TABLE IF NOT EXISTS pr_reviews (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_url TEXT NOT NULL UNIQUE,
    pr_number INTEGER,
    repo TEXT,
    session_id TEXT,
    pr_title TEXT,
    pr_state TEXT,
    review_status TEXT NOT NULL DEFAULT 'pending',
    complexity_score REAL,
    complexity_details TEXT,  -- JSON breakdown
    lines_changed INTEGER,
    files_changed INTEGER,
    test_files_changed INTEGER,
    critical_files_touched INTEGER NOT NULL DEFAULT 0,
    ci_status TEXT,
    auto_merge_eligible INTEGER NOT NULL DEFAULT 0,
    auto_merge_reason TEXT,
    review_notes TEXT,
    head_sha TEXT,
    pr_created_at TEXT,
    last_checked_at TEXT,
    merged_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_pr_reviews_session ON pr_reviews(session_id);
CREATE INDEX IF NOT EXISTS idx_pr_reviews_status ON pr_reviews(review_status);
"""
