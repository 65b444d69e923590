from __future__ import annotations

import copy
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger("clerk.profiles")

MAX_RECENTLY_VIEWED = 24
MAX_VIEWED_CATEGORIES = 50
MAX_ADDED_PRODUCTS = 50
SORT_PREFERENCES = ("price_asc", "price_desc", "rating", "none")


@dataclass
class ShopperProfile:
    """Per-session heuristic memory used to resolve pronouns and personalize results."""
    viewed_categories: List[str] = field(default_factory=list)
    added_product_ids: List[int] = field(default_factory=list)
    recently_viewed_product_ids: List[int] = field(default_factory=list)
    preferred_sort: str = "none"
    last_mentioned_product_id: Optional[int] = None
    last_shown_product_ids: List[int] = field(default_factory=list)
    last_query: str = ""
    awaiting_checkout_confirmation: bool = False

    def record_viewed_category(self, category: str) -> None:
        # Append-only history, trimmed from the oldest end.
        if not category:
            return
        self.viewed_categories.append(category)
        if len(self.viewed_categories) > MAX_VIEWED_CATEGORIES:
            del self.viewed_categories[: len(self.viewed_categories) - MAX_VIEWED_CATEGORIES]

    def record_added_product(self, product_id: int) -> None:
        self.added_product_ids.append(product_id)
        if len(self.added_product_ids) > MAX_ADDED_PRODUCTS:
            del self.added_product_ids[: len(self.added_product_ids) - MAX_ADDED_PRODUCTS]

    def show_products(self, product_ids: List[int]) -> None:
        """Remember rendered cards; the first one becomes the pronoun anchor."""
        self.last_shown_product_ids = list(product_ids)
        if product_ids:
            self.last_mentioned_product_id = product_ids[0]

    def activity_summary(self) -> Dict[str, object]:
        """Recent-activity snapshot embedded in the assistant's system prompt."""
        return {
            "viewedCategories": self.viewed_categories[-10:],
            "addedProductIds": self.added_product_ids[-10:],
            "recentlyViewedProductIds": self.recently_viewed_product_ids[-10:],
            "preferredSort": self.preferred_sort,
            "lastMentionedProductId": self.last_mentioned_product_id,
        }

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def push_unique(values: List[int], additions: Iterable[int], max_items: int = MAX_RECENTLY_VIEWED) -> List[int]:
    """Purpose: Append ids without duplicates and keep only the newest max_items.
    Inputs/Outputs: Inputs are the current list, new ids, and a cap; returns a new list.
    Side Effects / State: None; the input list is not mutated.
    Dependencies: None.
    Failure Modes: Non-int values are skipped.
    If Removed: Recently-viewed and cart histories grow without bound.
    Testing Notes: Pushing 30 distinct ids keeps the last 24 in insertion order.
    """
    # Preserve first-seen order and evict from the oldest end.
    result = list(values)
    for value in additions:
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        if value not in result:
            result.append(value)
    if len(result) > max_items:
        result = result[len(result) - max_items :]
    return result


class ProfileStore(ABC):
    """Session-keyed storage for ShopperProfile objects."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[ShopperProfile]:
        """Return a copy of the stored profile, or None when the session is unknown."""

    @abstractmethod
    def create(self, session_id: str) -> ShopperProfile:
        """Create, store, and return a copy of a fresh profile."""

    @abstractmethod
    def put(self, session_id: str, profile: ShopperProfile) -> None:
        """Commit a profile for the session."""

    @abstractmethod
    def session_lock(self, session_id: str) -> threading.Lock:
        """Lock that serializes turns for one session."""

    def get_or_create(self, session_id: str) -> ShopperProfile:
        profile = self.get(session_id)
        if profile is None:
            profile = self.create(session_id)
        return profile


class InMemoryProfileStore(ProfileStore):
    """Process-lifetime profile store with idle TTL, a size cap, and per-session locks."""

    def __init__(
        self,
        ttl_sec: Optional[int] = None,
        max_profiles: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Purpose: Initialize empty caches and eviction settings.
        Inputs/Outputs: Inputs are an optional idle TTL, a max_profiles cap, and a clock;
            no return value.
        Side Effects / State: Creates the profile map, touch timestamps, and lock registry.
        Dependencies: Uses threading for the registry guard.
        Failure Modes: None at init.
        If Removed: The Clerk has nowhere to keep per-session memory.
        Testing Notes: Inject a fake clock to exercise TTL eviction deterministically.
        """
        # Keep configuration and the guarded in-memory caches.
        self._ttl_sec = ttl_sec
        self._max_profiles = max_profiles
        self._clock = clock
        self._profiles: Dict[str, ShopperProfile] = {}
        self._touched_at: Dict[str, float] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, session_id: str) -> Optional[ShopperProfile]:
        """Purpose: Fetch a session's profile if it is still live.
        Inputs/Outputs: Input is session_id; output is a deep copy or None.
        Side Effects / State: Evicts expired profiles before the lookup.
        Dependencies: Uses _evict_expired.
        Failure Modes: Unknown or expired sessions return None.
        If Removed: Pronoun anchors and personalization reset every turn.
        Testing Notes: Mutating the returned copy must not change the stored profile.
        """
        # Return a copy so an aborted turn cannot leak partial mutations.
        with self._guard:
            self._evict_expired()
            profile = self._profiles.get(session_id)
            return copy.deepcopy(profile) if profile is not None else None

    def create(self, session_id: str) -> ShopperProfile:
        with self._guard:
            profile = ShopperProfile()
            self._profiles[session_id] = profile
            self._touched_at[session_id] = self._clock()
            self._prune_profiles()
            logger.debug("session=%s profile=created", session_id)
            return copy.deepcopy(profile)

    def put(self, session_id: str, profile: ShopperProfile) -> None:
        """Purpose: Commit a profile after a completed turn.
        Inputs/Outputs: Inputs are session_id and profile; no return value.
        Side Effects / State: Replaces the stored profile and refreshes its touch time.
        Dependencies: Uses _prune_profiles.
        Failure Modes: None.
        If Removed: Turn results never persist to the next turn.
        Testing Notes: put then get returns an equal but distinct object.
        """
        # Store a private copy and refresh recency.
        with self._guard:
            self._profiles[session_id] = copy.deepcopy(profile)
            self._touched_at[session_id] = self._clock()
            self._prune_profiles()

    def session_lock(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._profiles)

    def _evict_expired(self) -> None:
        # Drop profiles idle longer than the TTL.
        if not self._ttl_sec or self._ttl_sec <= 0:
            return
        cutoff = self._clock() - self._ttl_sec
        expired = [session_id for session_id, ts in self._touched_at.items() if ts < cutoff]
        for session_id in expired:
            self._forget(session_id)
        if expired:
            logger.info("profiles_expired=%s", len(expired))

    def _prune_profiles(self) -> bool:
        """Purpose: Enforce max_profiles by dropping least-recently-touched sessions.
        Inputs/Outputs: No inputs; returns True if any profiles were removed.
        Side Effects / State: Mutates the profile, touch, and lock caches.
        Dependencies: Uses _max_profiles and touch-time ordering.
        Failure Modes: None; no-op when max_profiles is unset or not exceeded.
        If Removed: Profile memory grows with every new cookie.
        Testing Notes: Set max_profiles=2, create three sessions, and check the oldest is gone.
        """
        # Remove least-recent sessions when above the configured cap.
        if not self._max_profiles or self._max_profiles <= 0:
            return False
        if len(self._profiles) <= self._max_profiles:
            return False
        ordered = sorted(self._touched_at.items(), key=lambda pair: pair[1], reverse=True)
        keep_ids = {session_id for session_id, _ in ordered[: self._max_profiles]}
        removed = [session_id for session_id in list(self._profiles.keys()) if session_id not in keep_ids]
        for session_id in removed:
            self._forget(session_id)
        return bool(removed)

    def _forget(self, session_id: str) -> None:
        self._profiles.pop(session_id, None)
        self._touched_at.pop(session_id, None)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            self._locks.pop(session_id, None)
