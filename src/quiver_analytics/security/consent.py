"""Player identity and data collection consent."""
from __future__ import annotations

from dataclasses import asdict, dataclass
import hashlib
import json
import logging
from pathlib import Path
import secrets
from typing import Any, Dict, Optional

logger = logging.getLogger("quiver.consent")


def hash_player_id(player_id: int) -> str:
    return hashlib.sha256(str(player_id).encode("utf-8")).hexdigest()


def generate_player_id() -> int:
    """Return a random unsigned 64-bit identifier."""

    return secrets.randbits(64)


@dataclass(slots=True)
class ConsentState:
    player_id: int
    hash: str
    requested: bool = False
    granted: bool = False

    @classmethod
    def new(cls) -> "ConsentState":
        player_id = generate_player_id()
        return cls(player_id=player_id, hash=hash_player_id(player_id))

    @property
    def is_intact(self) -> bool:
        return self.hash == hash_player_id(self.player_id)


class ConsentStore:
    """JSON file holding the persisted :class:`ConsentState`."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        return json.loads(self.path.read_text(encoding="utf-8"))

    def save(self, state: ConsentState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(state), indent=2), encoding="utf-8")

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


class ConsentGate:
    """Decides whether events may be collected for this installation."""

    def __init__(self, store: ConsentStore, *, auth_token: str, consent_required: bool) -> None:
        self.store = store
        self.auth_token = auth_token
        self.consent_required = consent_required
        self.state: Optional[ConsentState] = None

    def load(self) -> ConsentState:
        """Load the stored state, reinitializing it when missing or tampered with.

        The hash only protects against casual edits of the player id; it is
        trivially bypassed by anyone who recomputes it.
        """

        try:
            raw = self.store.load()
        except (OSError, ValueError) as exc:
            logger.warning("Consent file %s is unreadable, resetting it: %s", self.store.path, exc)
            raw = {}
        state = None
        if raw is not None:
            try:
                state = self._parse(raw)
            except (ValueError, TypeError, KeyError) as exc:
                logger.warning("Consent file %s is malformed, resetting it: %s", self.store.path, exc)
        if state is not None and not state.is_intact:
            logger.warning("Player id hash mismatch in %s, resetting consent state", self.store.path)
            state = None
        if state is None:
            if raw is not None:
                self._delete_store()
            self.state = ConsentState.new()
            self._persist()
        else:
            self.state = state
        return self.state

    @staticmethod
    def _parse(raw: Dict[str, Any]) -> ConsentState:
        return ConsentState(
            player_id=int(raw["player_id"]),
            hash=str(raw["hash"]),
            requested=bool(raw.get("requested", False)),
            granted=bool(raw.get("granted", False)),
        )

    @property
    def player_id(self) -> int:
        return self._require_state().player_id

    def is_collection_enabled(self) -> bool:
        if not self.auth_token:
            return False
        return not self.consent_required or self._require_state().granted

    def should_prompt_user(self) -> bool:
        state = self._require_state()
        return self.consent_required and not state.requested and not state.granted

    def approve(self) -> None:
        state = self._require_state()
        state.requested = True
        state.granted = True
        self._persist()
        logger.info("Data collection approved")

    def deny(self) -> None:
        state = self._require_state()
        if state.requested and not state.granted:
            return
        state.requested = True
        state.granted = False
        self._persist()
        logger.info("Data collection denied")

    def _require_state(self) -> ConsentState:
        if self.state is None:
            return self.load()
        return self.state

    def _persist(self) -> None:
        try:
            self.store.save(self._require_state())
        except OSError as exc:
            logger.error("Failed to persist consent state to %s: %s", self.store.path, exc)

    def _delete_store(self) -> None:
        try:
            self.store.delete()
        except OSError as exc:
            logger.error("Failed to remove consent file %s: %s", self.store.path, exc)
