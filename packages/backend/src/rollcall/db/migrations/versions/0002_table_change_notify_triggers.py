"""table change NOTIFY triggers for the realtime change stream

Learn: PostgreSQL LISTEN/NOTIFY gives us row-level change notifications
without polling. One shared trigger function fires after every INSERT,
UPDATE or DELETE on a tracked table and notifies the channel
'rollcall:changes:<table>'. PostgresChangeStream LISTENs on those channels.

The payload (operation + row id) is informational only; consumers treat
any notification as "this table changed".

Revision ID: 0002_table_change_notify
Revises: 0001_initial_schema
Create Date: 2026-10-12 09:31:47.540911
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0002_table_change_notify'
down_revision: Union[str, None] = '0001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CHANNEL_PREFIX = 'rollcall:changes'

# Keep in sync with rollcall.realtime.tables.TableName
TRACKED_TABLES = (
    'attendance_events',
    'attendance_daily_rollups',
    'worker_mappings',
    'workers',
    'establishments',
    'departments',
)


def upgrade() -> None:
    op.execute(f"""
        CREATE OR REPLACE FUNCTION notify_table_change()
        RETURNS TRIGGER AS $$
        DECLARE
            row_id uuid;
        BEGIN
            IF TG_OP = 'DELETE' THEN
                row_id := OLD.id;
            ELSE
                row_id := NEW.id;
            END IF;
            PERFORM pg_notify('{CHANNEL_PREFIX}:' || TG_TABLE_NAME, json_build_object(
                'table', TG_TABLE_NAME,
                'op', TG_OP,
                'id', row_id
            )::text);
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql;
    """)

    for table in TRACKED_TABLES:
        op.execute(f"""
            CREATE TRIGGER {table}_change_notify
                AFTER INSERT OR UPDATE OR DELETE ON {table}
                FOR EACH ROW
                EXECUTE FUNCTION notify_table_change();
        """)


def downgrade() -> None:
    for table in TRACKED_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_change_notify ON {table};")
    op.execute("DROP FUNCTION IF EXISTS notify_table_change;")
