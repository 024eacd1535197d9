from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from backend.app.core.database import Base

class PlayerRating(Base):
    """
    Per-variant skill rating, read when a player registers for a tournament.
    Maintained by the rating service; the tournament engine only reads it.
    """
    __tablename__ = "player_ratings"

    user_id = Column(String, primary_key=True)
    game_variant = Column(String, primary_key=True)
    rating = Column(Integer, default=1000)
    games_played = Column(Integer, default=0)

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
