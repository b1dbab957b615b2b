"""Database service layer: idempotent upserts, price history appends, read queries"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import DuplicateRecordError
from .models import PokemonCard, PokemonSet, PriceHistory, UserCard, init_database, utcnow

logger = logging.getLogger(__name__)

UNKNOWN_RARITY = "Unknown"


class DatabaseService:
    """Single-record units of work over the catalog tables.

    Every write opens and commits its own session, so a failure only ever
    loses the record being written.
    """

    def __init__(self, connection_string: str):
        self.engine = init_database(connection_string)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def get_session(self) -> Session:
        """Context manager for database sessions"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.debug(f"Database session rolled back: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    # ── Sets ──────────────────────────────────────────────────────────────────

    def upsert_set(self, set_data: Dict[str, Any]) -> bool:
        """Create or refresh a set. Returns True when the row was created."""
        fields = _set_fields(set_data)
        with self.get_session() as session:
            set_obj = session.get(PokemonSet, set_data["id"])
            created = set_obj is None
            if created:
                set_obj = PokemonSet(id=set_data["id"])
                session.add(set_obj)
            for key, value in fields.items():
                setattr(set_obj, key, value)
            set_obj.last_updated = utcnow()
        return created

    def create_set(self, set_data: Dict[str, Any]) -> None:
        """Insert a set that must not exist yet"""
        try:
            with self.get_session() as session:
                session.add(PokemonSet(id=set_data["id"], last_updated=utcnow(), **_set_fields(set_data)))
        except IntegrityError as e:
            if not is_unique_violation(e, "pokemon_sets_pkey", "pokemon_sets.id"):
                raise
            raise DuplicateRecordError(f"Set {set_data['id']} already exists") from e

    def get_set(self, set_id: str) -> Optional[PokemonSet]:
        with self.get_session() as session:
            return session.get(PokemonSet, set_id)

    def get_set_ids(self) -> Set[str]:
        with self.get_session() as session:
            return {row[0] for row in session.query(PokemonSet.id).all()}

    def list_sets(self) -> List[Tuple[str, str]]:
        """(id, name) of every stored set, newest release first"""
        with self.get_session() as session:
            rows = (
                session.query(PokemonSet.id, PokemonSet.name)
                .order_by(PokemonSet.release_date.desc(), PokemonSet.id)
                .all()
            )
            return [(row[0], row[1]) for row in rows]

    def update_set_totals(self, set_id: str, total: int) -> bool:
        with self.get_session() as session:
            set_obj = session.get(PokemonSet, set_id)
            if set_obj is None:
                return False
            set_obj.printed_total = total
            set_obj.total = total
            return True

    def count_sets(self) -> int:
        with self.get_session() as session:
            return session.query(func.count(PokemonSet.id)).scalar()

    # ── Cards ─────────────────────────────────────────────────────────────────

    def upsert_card(self, card_data: Dict[str, Any]) -> bool:
        """Create or refresh a card. Returns True when the row was created."""
        fields = _card_fields(card_data)
        with self.get_session() as session:
            card = session.get(PokemonCard, card_data["id"])
            created = card is None
            if created:
                card = PokemonCard(id=card_data["id"])
                session.add(card)
            for key, value in fields.items():
                setattr(card, key, value)
            card.last_updated = utcnow()
        return created

    def get_card(self, card_id: str) -> Optional[PokemonCard]:
        with self.get_session() as session:
            return session.get(PokemonCard, card_id)

    def update_card_pricing(self, card_id: str, tcgplayer: Dict[str, Any]) -> bool:
        """Replace the stored TCGplayer blob. Returns False for unknown cards."""
        with self.get_session() as session:
            card = session.get(PokemonCard, card_id)
            if card is None:
                return False
            card.tcgplayer = tcgplayer
            card.last_updated = utcnow()
            return True

    def list_card_tcgplayer(
        self, card_ids: Optional[List[str]] = None
    ) -> List[Tuple[str, Optional[Dict[str, Any]]]]:
        """(id, tcgplayer blob) of the given cards, or of every stored card"""
        with self.get_session() as session:
            query = session.query(PokemonCard.id, PokemonCard.tcgplayer)
            if card_ids:
                query = query.filter(PokemonCard.id.in_(card_ids))
            return [(row[0], row[1]) for row in query.order_by(PokemonCard.id).all()]

    def update_card_url(self, card_id: str, url: str) -> bool:
        """Set ``tcgplayer.url``, keeping the rest of the blob. False for unknown cards."""
        with self.get_session() as session:
            card = session.get(PokemonCard, card_id)
            if card is None:
                return False
            card.tcgplayer = {**(card.tcgplayer or {}), "url": url}
            card.last_updated = utcnow()
            return True

    def count_cards(self, set_id: Optional[str] = None) -> int:
        with self.get_session() as session:
            query = session.query(func.count(PokemonCard.id))
            if set_id is not None:
                query = query.filter(PokemonCard.set_id == set_id)
            return query.scalar()

    def oldest_card_update(self, set_id: str) -> Optional[datetime]:
        """Oldest refresh time among the set's cards, None when the set has none"""
        with self.get_session() as session:
            value = (
                session.query(func.min(PokemonCard.last_updated))
                .filter(PokemonCard.set_id == set_id)
                .scalar()
            )
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    # ── Price history ─────────────────────────────────────────────────────────

    def append_price_history(
        self, card_id: str, prices: Dict[str, Optional[float]], captured_at: datetime
    ) -> None:
        """Append one snapshot.

        Raises:
            DuplicateRecordError: the card already has a snapshot for ``captured_at``
        """
        try:
            with self.get_session() as session:
                session.add(PriceHistory(card_id=card_id, date=captured_at, **prices))
        except IntegrityError as e:
            if not is_unique_violation(
                e, "uq_price_history_card_date", "price_history.card_id, price_history.date"
            ):
                raise
            raise DuplicateRecordError(
                f"Price history for {card_id} at {captured_at.isoformat()} already recorded"
            ) from e

    def count_price_history(self, card_id: Optional[str] = None) -> int:
        with self.get_session() as session:
            query = session.query(func.count(PriceHistory.id))
            if card_id is not None:
                query = query.filter(PriceHistory.card_id == card_id)
            return query.scalar()

    # ── Collections ───────────────────────────────────────────────────────────

    def get_collection_card_ids(self) -> List[str]:
        """Distinct card IDs present in any user's collection"""
        with self.get_session() as session:
            rows = session.query(UserCard.card_id).distinct().order_by(UserCard.card_id).all()
            return [row[0] for row in rows]

    def add_user_card(self, user_id: str, card_id: str, variant: str = "normal", quantity: int = 1):
        with self.get_session() as session:
            session.add(UserCard(user_id=user_id, card_id=card_id, variant=variant, quantity=quantity))


def _set_fields(set_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": set_data["name"],
        "series": set_data.get("series"),
        "printed_total": set_data.get("printedTotal"),
        "total": set_data.get("total"),
        "legalities": set_data.get("legalities") or {},
        "ptcgo_code": set_data.get("ptcgoCode"),
        "release_date": set_data.get("releaseDate"),
        "updated_at": set_data.get("updatedAt"),
        "images": set_data.get("images") or {"symbol": "", "logo": ""},
    }


def _card_fields(card_data: Dict[str, Any]) -> Dict[str, Any]:
    set_info = card_data.get("set") or {}
    return {
        "name": card_data["name"],
        "supertype": card_data.get("supertype"),
        "subtypes": card_data.get("subtypes") or [],
        "hp": card_data.get("hp"),
        "types": card_data.get("types") or [],
        "set_id": set_info["id"],
        "set_name": set_info.get("name"),
        "number": card_data["number"],
        "artist": card_data.get("artist"),
        "rarity": card_data.get("rarity") or UNKNOWN_RARITY,
        "national_pokedex_numbers": card_data.get("nationalPokedexNumbers") or [],
        "images": card_data.get("images") or {},
        "tcgplayer": card_data.get("tcgplayer"),
    }


def is_unique_violation(error: IntegrityError, constraint: str, columns: str) -> bool:
    """Whether ``error`` was raised by the named unique constraint.

    Server drivers report the constraint name; SQLite only reports the
    ``table.column`` list of the violated index.
    """
    diag = getattr(error.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name:
        return constraint_name == constraint
    return f"UNIQUE constraint failed: {columns}" in str(error.orig)
