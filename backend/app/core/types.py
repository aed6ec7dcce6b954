"""Column types shared by the models, portable between PostgreSQL and SQLite"""
from sqlalchemy import TypeDecorator, String, JSON
from sqlalchemy.dialects.postgresql import JSONB
import uuid


def generate_uuid() -> str:
    return str(uuid.uuid4())


class GUID(TypeDecorator):
    """UUID stored as VARCHAR(36) and always handed back as str"""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        # normalise so lookups with upper-case ids still match
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        return str(value) if value is not None else None


# Nested pitch sections and profile blocks; JSONB on PostgreSQL, TEXT-backed JSON elsewhere.
# Values must be reassigned (not mutated in place) for the ORM to notice changes.
JSONType = JSON().with_variant(JSONB(), "postgresql")


def is_valid_uuid(value) -> bool:
    """True when value parses as a UUID"""
    try:
        uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return False
    return True
