from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from backend.app.core.database import Base

class LeaderboardEntry(Base):
    __tablename__ = "tournament_leaderboard"

    user_id = Column(String, primary_key=True, index=True)
    wins = Column(Integer, default=0)
    finals = Column(Integer, default=0)
    semifinals = Column(Integer, default=0)
    points = Column(Integer, default=0, index=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
