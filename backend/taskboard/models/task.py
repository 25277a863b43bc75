from sqlalchemy import Boolean, Column, String, Text

from taskboard.core.database import Base, UTCDateTime

UNASSIGNED_NAME = "unassigned"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    deadline = Column(UTCDateTime(), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    # "" means unassigned; otherwise a users.id (kept without a foreign key,
    # the consistency engine owns the relation).
    assigned_user = Column(String(32), nullable=False, default="", index=True)
    assigned_user_name = Column(String, nullable=False, default=UNASSIGNED_NAME)
    date_created = Column(UTCDateTime(), nullable=False)
