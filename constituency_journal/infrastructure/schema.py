"""
Schema for the constituency journal table.

The unique index over (petition_id, constituency_id) is what makes concurrent
get-or-create safe; the store relies on it rather than on application checks.
"""

from __future__ import annotations

from psycopg import Connection

from constituency_journal.domain.models import CONSTITUENCY_ID_MAX_LENGTH

JOURNAL_TABLE = "constituency_petition_journals"
JOURNAL_KEY_INDEX = "index_constituency_petition_journals_on_petition_and_constituency"

JOURNAL_DDL = f"""
CREATE TABLE IF NOT EXISTS public.{JOURNAL_TABLE} (
    id BIGSERIAL PRIMARY KEY,
    petition_id BIGINT NOT NULL,
    constituency_id VARCHAR({CONSTITUENCY_ID_MAX_LENGTH}) NOT NULL
        CHECK (btrim(constituency_id) <> ''),
    signature_count INTEGER NOT NULL DEFAULT 0
        CHECK (signature_count >= 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS {JOURNAL_KEY_INDEX}
    ON public.{JOURNAL_TABLE} (petition_id, constituency_id);
"""


def ensure_schema(conn: Connection) -> None:
    """
    Create the journal table and its unique key index if missing.

    Safe to run repeatedly and from several processes at once.
    """
    with conn.cursor() as cur:
        # Serialize concurrent bootstraps; CREATE ... IF NOT EXISTS alone can race.
        cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s));", (JOURNAL_TABLE,))
        cur.execute(JOURNAL_DDL)
    conn.commit()


__all__ = ["JOURNAL_DDL", "JOURNAL_KEY_INDEX", "JOURNAL_TABLE", "ensure_schema"]
