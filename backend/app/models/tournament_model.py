from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.core.database import Base

class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(String, primary_key=True, index=True)  # uuid4
    name = Column(String, nullable=False)
    game_variant = Column(String, nullable=False)  # briskula, treseta
    max_participants = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="registration", index=True)  # registration, ongoing, finished, cancelled
    seeding_method = Column(String, nullable=False, default="random")  # random, elo
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    round_deadline_hours = Column(Integer, nullable=False, default=48)
    prize_pool = Column(String, nullable=True)

    winner_user_id = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    players = relationship("TournamentPlayer", back_populates="tournament", cascade="all, delete-orphan")
    matches = relationship("TournamentMatch", back_populates="tournament", cascade="all, delete-orphan")

class TournamentPlayer(Base):
    __tablename__ = "tournament_players"
    __table_args__ = (UniqueConstraint("tournament_id", "user_id", name="uq_tournament_player"),)

    # Autoincrement id doubles as registration order for stable seeding
    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    user_name = Column(String, nullable=False)
    rating = Column(Integer, default=1000)
    seed = Column(Integer, nullable=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    tournament = relationship("Tournament", back_populates="players")
