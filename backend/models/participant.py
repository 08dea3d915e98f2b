from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey
from database.db import Base
from datetime import datetime

class Participant(Base):
    """
    Durable participant identity.
    Survives reconnects through its session token; the connection handle
    only reflects the latest live socket.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    username = Column(String(100), nullable=False)
    """Display name chosen on entry"""

    session_id = Column(String(128), unique=True, nullable=False, index=True)
    """Durable session token"""

    connection_id = Column(String(64), nullable=True)
    """Ephemeral connection handle, null while offline"""

    test_id = Column(Integer, ForeignKey("tests.id"), nullable=True, index=True)
    """Test the participant is currently associated with"""

    has_submitted = Column(Boolean, nullable=False, default=False)
    """Whether the participant submitted for the associated test"""

    connected_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Participant(id={self.id}, username={self.username}, test_id={self.test_id})>"
