"""Database models for the synchronized Pokemon TCG catalog"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PokemonSet(Base):
    """Pokemon TCG Set information"""

    __tablename__ = "pokemon_sets"

    id = Column(String(50), primary_key=True)  # Official set ID from Pokemon TCG API
    name = Column(String(200), nullable=False, index=True)
    series = Column(String(100), index=True)
    printed_total = Column(Integer)  # Number shown on cards
    total = Column(Integer)  # Actual total including secrets

    legalities = Column(JSON)  # {"standard": "Legal", "expanded": "Legal"}
    images = Column(JSON)  # {"symbol": "url", "logo": "url"}

    ptcgo_code = Column(String(20))
    release_date = Column(String(20), index=True)  # Upstream "YYYY/MM/DD", kept verbatim
    updated_at = Column(String(40))  # Upstream last-updated timestamp

    last_updated = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<PokemonSet {self.id} {self.name!r}>"


class PokemonCard(Base):
    """Individual card; set_id/set_name are denormalized copies of the owning set"""

    __tablename__ = "pokemon_cards"

    id = Column(String(50), primary_key=True)  # Upstream ID, e.g. "sv4-12"
    name = Column(String(200), nullable=False, index=True)
    supertype = Column(String(50), index=True)  # Pokemon, Trainer, Energy
    subtypes = Column(JSON, default=list)
    hp = Column(String(10))
    types = Column(JSON, default=list)

    set_id = Column(String(50), nullable=False, index=True)
    set_name = Column(String(200))
    number = Column(String(20), nullable=False)  # May be non-numeric, e.g. "SWSH001"

    artist = Column(String(200))
    rarity = Column(String(50), nullable=False, default="Unknown", index=True)
    national_pokedex_numbers = Column(JSON, default=list)

    images = Column(JSON)  # {"small": "url", "large": "url"}
    tcgplayer = Column(JSON)  # Whole TCGplayer blob, replaced on every refresh

    last_updated = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<PokemonCard {self.id} {self.name!r}>"


class PriceHistory(Base):
    """Append-only market price snapshots, one per card per capture run"""

    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(String(50), nullable=False)
    date = Column(DateTime, nullable=False)

    normal = Column(Float)
    holofoil = Column(Float)
    reverse_holofoil = Column(Float)
    first_edition = Column(Float)

    __table_args__ = (
        UniqueConstraint("card_id", "date", name="uq_price_history_card_date"),
        Index("idx_price_history_card_date", "card_id", "date"),
    )


class UserCard(Base):
    """A card in a user's collection; only read here to scope price refreshes"""

    __tablename__ = "user_cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)
    card_id = Column(String(50), nullable=False, index=True)
    variant = Column(String(50), default="normal")
    quantity = Column(Integer, default=1)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "card_id", "variant", name="uq_user_card_variant"),)


class DatabaseConfig:
    """Engine construction for SQLite (local runs, tests) and server databases"""

    @staticmethod
    def get_engine(connection_string, **kwargs):
        engine_kwargs = {"pool_pre_ping": True, "echo": False}
        if connection_string.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs.update({"pool_size": 10, "max_overflow": 20, "pool_recycle": 3600})
        engine_kwargs.update(kwargs)
        return create_engine(connection_string, **engine_kwargs)


def init_database(connection_string):
    """Initialize the database with all tables"""
    engine = DatabaseConfig.get_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine
