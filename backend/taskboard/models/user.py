from sqlalchemy import JSON, Column, String

from taskboard.core.database import Base, UTCDateTime


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    # Ordered list of task ids; always reassigned as a new list, never mutated in place.
    pending_tasks = Column(JSON, nullable=False, default=list)
    date_created = Column(UTCDateTime(), nullable=False)
