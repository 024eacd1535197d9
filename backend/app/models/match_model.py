from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.app.core.database import Base

class TournamentMatch(Base):
    __tablename__ = "tournament_matches"
    __table_args__ = (
        UniqueConstraint("tournament_id", "round_number", "match_number", name="uq_match_position"),
    )

    id = Column(String, primary_key=True, index=True)  # uuid4
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    match_number = Column(Integer, nullable=False)

    tournament = relationship("Tournament", back_populates="matches")

    # Slots: user id, "TBD" (undetermined) or NULL (bye)
    player1 = Column(String, nullable=True)
    player2 = Column(String, nullable=True)
    winner_user_id = Column(String, nullable=True)

    status = Column(String, nullable=False, default="waiting", index=True)  # waiting, pending, playing, finished, forfeit
    deadline = Column(DateTime(timezone=True), nullable=True, index=True)
    game_room_id = Column(String, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
