from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings


engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False,
)


# Enable WAL mode for better concurrent read performance
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_startup_migrations() -> None:
    """Apply lightweight schema fixes for existing SQLite databases."""
    inspector = inspect(engine)

    def _table_columns(table_name: str) -> set[str]:
        try:
            return {col["name"] for col in inspector.get_columns(table_name)}
        except Exception:
            return set()

    user_columns = _table_columns("users")
    senior_state_columns = _table_columns("senior_state")
    check_in_columns = _table_columns("check_ins")
    if not user_columns and not senior_state_columns and not check_in_columns:
        # Tables may not exist yet on first boot.
        return

    alter_statements: list[str] = []
    if user_columns:
        if "role" not in user_columns:
            alter_statements.append("ALTER TABLE users ADD COLUMN role TEXT DEFAULT 'senior'")
        if "token_version" not in user_columns:
            alter_statements.append("ALTER TABLE users ADD COLUMN token_version INTEGER DEFAULT 0")

    if senior_state_columns:
        if "brain_games_enabled" not in senior_state_columns:
            alter_statements.append("ALTER TABLE senior_state ADD COLUMN brain_games_enabled BOOLEAN")
        if "health_quiz_enabled" not in senior_state_columns:
            alter_statements.append("ALTER TABLE senior_state ADD COLUMN health_quiz_enabled BOOLEAN")
        if "vacation_mode" not in senior_state_columns:
            alter_statements.append("ALTER TABLE senior_state ADD COLUMN vacation_mode BOOLEAN DEFAULT 0")
        if "current_streak" not in senior_state_columns:
            alter_statements.append("ALTER TABLE senior_state ADD COLUMN current_streak INTEGER DEFAULT 0")
        if "start_date" not in senior_state_columns:
            alter_statements.append("ALTER TABLE senior_state ADD COLUMN start_date DATETIME")

    if check_in_columns:
        if "scheduled_count" not in check_in_columns:
            alter_statements.append("ALTER TABLE check_ins ADD COLUMN scheduled_count INTEGER DEFAULT 1")
        if "scheduled_for" not in check_in_columns:
            alter_statements.append("ALTER TABLE check_ins ADD COLUMN scheduled_for TEXT")
        if "brain_exercise_completed" not in check_in_columns:
            alter_statements.append("ALTER TABLE check_ins ADD COLUMN brain_exercise_completed BOOLEAN DEFAULT 0")

    with engine.begin() as conn:
        for stmt in alter_statements:
            conn.execute(text(stmt))

        if user_columns:
            conn.execute(text("UPDATE users SET role = COALESCE(role, 'senior')"))
            conn.execute(text("UPDATE users SET token_version = COALESCE(token_version, 0)"))
        if senior_state_columns:
            # Backfill nulls for any rows created before defaults existed.
            # Toggle columns stay NULL on purpose: NULL means "never written".
            conn.execute(text("UPDATE senior_state SET current_streak = COALESCE(current_streak, 0)"))
            conn.execute(text("UPDATE senior_state SET vacation_mode = COALESCE(vacation_mode, 0)"))
        if check_in_columns:
            conn.execute(text("UPDATE check_ins SET scheduled_count = COALESCE(scheduled_count, 1)"))
            conn.execute(text(
                """
                CREATE INDEX IF NOT EXISTS idx_check_ins_user_timestamp
                ON check_ins (user_id, timestamp)
                """
            ))
