"""
Month-by-month manual triage of a photo library.

A TriageSession walks one month's photos one at a time. Each photo is marked
keep or delete, decisions can be undone in reverse order, and the delete
marks are committed in a single all-or-nothing call to a deleter.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from photo_triage.core.index import AssetId
from photo_triage.platforms.base import AssetDeleter, AssetRecord, DeletionResult

logger = logging.getLogger(__name__)

UNKNOWN_MONTH = "unknown"
PREVIEW_LIMIT = 8


class Decision(Enum):
    KEEP = "keep"
    DELETE = "delete"


class TriageState(Enum):
    IDLE = "idle"
    REVIEWING = "reviewing"
    EXHAUSTED = "exhausted"
    DELETING = "deleting"


@dataclass(frozen=True)
class SwipeAsset:
    """An asset as seen by the triage session."""

    id: AssetId
    creation_date: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AssetRecord) -> "SwipeAsset":
        created = None
        if record.creation_time is not None:
            created = datetime.fromtimestamp(record.creation_time)
        return cls(id=record.local_identifier, creation_date=created)


@dataclass
class SwipeMonth:
    """One calendar month of assets, newest first."""

    id: str
    title: str
    assets: List[SwipeAsset] = field(default_factory=list)


@dataclass(frozen=True)
class CommitResult:
    """Outcome of committing pending deletions."""

    success: bool
    message: str
    deleted: Tuple[AssetId, ...] = ()


def month_key(created: Optional[datetime]) -> str:
    # Undated assets get a fixed month instead of the current one.
    if created is None:
        return UNKNOWN_MONTH
    return f"{created.year:04d}-{created.month:02d}"


def month_title(key: str) -> str:
    if key == UNKNOWN_MONTH:
        return "Unknown"
    try:
        return datetime.strptime(key, "%Y-%m").strftime("%B %Y")
    except ValueError:
        return key


def build_months(assets: Iterable[SwipeAsset]) -> List[SwipeMonth]:
    """
    Partition assets into months.

    Months are ordered newest first with undated assets in a trailing
    "unknown" month. Within a month assets are newest first; ties fall back
    to identifier order.
    """
    grouped: Dict[str, List[SwipeAsset]] = defaultdict(list)
    for asset in assets:
        grouped[month_key(asset.creation_date)].append(asset)

    dated_keys = sorted((k for k in grouped if k != UNKNOWN_MONTH), reverse=True)
    keys = dated_keys + ([UNKNOWN_MONTH] if UNKNOWN_MONTH in grouped else [])

    months = []
    for key in keys:
        members = sorted(grouped[key], key=lambda a: a.id)
        members.sort(
            key=lambda a: a.creation_date or datetime.min,
            reverse=True,
        )
        months.append(SwipeMonth(id=key, title=month_title(key), assets=members))
    return months


class TriageSession:
    """Keep/delete review of a single month."""

    def __init__(self, month: SwipeMonth):
        self.month = month
        self.status_message = ""
        self._decisions: Dict[AssetId, Decision] = {}
        self._history: List[AssetId] = []
        self._index = 0
        self._current: Optional[SwipeAsset] = None
        self._started = False
        self._deleting = False

    # State

    @property
    def state(self) -> TriageState:
        if self._deleting:
            return TriageState.DELETING
        if not self._started:
            return TriageState.IDLE
        if self._current is None:
            return TriageState.EXHAUSTED
        return TriageState.REVIEWING

    @property
    def current_asset(self) -> Optional[SwipeAsset]:
        return self._current

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def decisions(self) -> Dict[AssetId, Decision]:
        """Copy of the decision ledger."""
        return dict(self._decisions)

    @property
    def pending_deletion_ids(self) -> List[AssetId]:
        return [
            asset.id
            for asset in self.month.assets
            if self._decisions.get(asset.id) is Decision.DELETE
        ]

    @property
    def pending_deletion_count(self) -> int:
        return len(self.pending_deletion_ids)

    @property
    def decided_count(self) -> int:
        return len(self._decisions)

    @property
    def undecided_count(self) -> int:
        return sum(1 for asset in self.month.assets if asset.id not in self._decisions)

    @property
    def total_count(self) -> int:
        return len(self.month.assets)

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def preview(self) -> List[SwipeAsset]:
        """Up to eight undecided assets after the current one."""
        if self._current is None:
            return []
        upcoming = [
            asset
            for asset in self.month.assets[self._index + 1:]
            if asset.id not in self._decisions
        ]
        return upcoming[:PREVIEW_LIMIT]

    # Transitions

    def start(self) -> None:
        """Begin (or restart) the review at the first asset with an empty ledger."""
        self._decisions = {}
        self._history = []
        self._index = 0
        self._started = True
        self.status_message = ""
        self._settle()

    restart = start

    def decide(self, decision: Decision) -> None:
        """Record a decision for the current asset and move to the next undecided one."""
        if self._current is None or self._deleting:
            return

        asset = self._current
        self._decisions[asset.id] = decision
        self._history.append(asset.id)
        logger.debug(f"{self.month.id}: {decision.value} {asset.id}")
        self._advance()

    def undo(self) -> None:
        """Revert the most recent decision and return to that asset."""
        if not self._history or self._deleting:
            return

        last = self._history.pop()
        self._decisions.pop(last, None)
        position = self._position_of(last)
        if position is not None:
            self._index = position
            self._current = self.month.assets[position]
        logger.debug(f"{self.month.id}: undo {last}")

    def commit(self, deleter: AssetDeleter) -> CommitResult:
        """
        Delete every asset marked for deletion.

        On success the assets leave the month together with their ledger and
        history entries. On failure nothing changes.
        """
        if self._deleting:
            return CommitResult(False, "A deletion is already in progress.")

        ids = self.pending_deletion_ids
        if not ids:
            self.status_message = "No photos marked for deletion."
            return CommitResult(False, self.status_message)

        self._deleting = True
        self.status_message = f"Deleting {len(ids)} photos…"
        try:
            result = deleter.delete_assets(ids)
        except Exception as e:
            logger.error(f"Deleter raised while deleting {len(ids)} assets: {e}")
            result = DeletionResult.failure(str(e))
        finally:
            self._deleting = False

        if not result.success:
            self.status_message = f"Deletion failed: {result.reason or 'unknown error'}"
            logger.warning(f"{self.month.id}: {self.status_message}")
            return CommitResult(False, self.status_message)

        self._apply_deletion(ids)
        self.status_message = f"Deleted {len(ids)} photos."
        logger.info(f"{self.month.id}: deleted {len(ids)} assets")
        return CommitResult(True, self.status_message, tuple(ids))

    # Internals

    def _position_of(self, asset_id: AssetId) -> Optional[int]:
        for position, asset in enumerate(self.month.assets):
            if asset.id == asset_id:
                return position
        return None

    def _next_undecided(self, start: int) -> Optional[int]:
        for position in range(start, len(self.month.assets)):
            if self.month.assets[position].id not in self._decisions:
                return position
        return None

    def _advance(self) -> None:
        position = self._next_undecided(self._index + 1)
        if position is None:
            self._current = None
            return
        self._index = position
        self._current = self.month.assets[position]

    def _settle(self) -> None:
        """Land on the first undecided asset at or after the cursor."""
        position = self._next_undecided(self._index)
        if position is None:
            position = self._next_undecided(0)
        if position is None:
            self._current = None
            return
        self._index = position
        self._current = self.month.assets[position]

    def _apply_deletion(self, ids: List[AssetId]) -> None:
        removed = set(ids)
        current_id = self._current.id if self._current is not None else None

        self.month.assets = [a for a in self.month.assets if a.id not in removed]
        self._history = [i for i in self._history if i not in removed]
        self._decisions = {k: v for k, v in self._decisions.items() if k not in removed}

        if current_id is not None:
            position = self._position_of(current_id)
            if position is not None:
                self._index = position
                return

        if self._index >= len(self.month.assets):
            self._index = max(0, len(self.month.assets) - 1)
        if self._current is not None:
            self._settle()
