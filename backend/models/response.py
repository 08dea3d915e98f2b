from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint
from database.db import Base
from datetime import datetime

class Response(Base):
    """One word contributed by one participant for one test"""
    __tablename__ = "responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)
    word = Column(String(200), nullable=False, index=True)

    position = Column(Integer, nullable=False)
    """1-based entry position (1..MAX_WORDS)"""

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "test_id", "position", name="unique_response_position"),
    )

    def __repr__(self):
        return f"<Response(user_id={self.user_id}, test_id={self.test_id}, word={self.word})>"
