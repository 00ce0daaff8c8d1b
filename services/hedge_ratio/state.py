"""joblib persistence for hedge ratio filters and pair managers."""

import shutil
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import joblib
import structlog

from .filter import FilterState, HedgeRatioFilter, HedgeRatioFilterError, PairHedgeRatioFilters

logger = structlog.get_logger(__name__)

STATE_VERSION = '1.0'

KIND_FILTER = 'filter'
KIND_PAIRS = 'pairs'


class StateFormatError(HedgeRatioFilterError, ValueError):
    """A state file does not hold a payload this version can restore."""


class StateMismatchError(HedgeRatioFilterError, ValueError):
    """Saved filter parameters differ from those of the target filter."""


def encode_filter(filter_obj: HedgeRatioFilter) -> Dict[str, Any]:
    """Picklable entry holding a filter's configuration and state."""
    return {
        'params': filter_obj.params,
        'state': asdict(filter_obj.get_current_state())
    }


def restore_filter(
    entry: Dict[str, Any],
    filter_obj: Optional[HedgeRatioFilter] = None
) -> HedgeRatioFilter:
    """
    Rebuild a filter from an encoded entry.

    With no target a filter is constructed from the saved parameters. A target
    whose parameters differ is refused with StateMismatchError, because its
    covariance recursion would not match the one that produced the state.
    The target is only written through set_state, which is all-or-nothing.
    """
    try:
        params = dict(entry['params'])
        state = FilterState(**entry['state'])
    except (KeyError, TypeError) as e:
        raise StateFormatError(f"Malformed filter entry: {e}") from e

    if filter_obj is None:
        filter_obj = HedgeRatioFilter(**params)
    elif filter_obj.params != params:
        raise StateMismatchError(
            f"Saved parameters {params} do not match filter parameters {filter_obj.params}"
        )

    filter_obj.set_state(state)
    return filter_obj


class StateManager:
    """
    Saves and restores filters as joblib files under one directory.

    Every file holds the same payload shape, a metadata block plus a mapping
    of name to encoded filter. A single filter is stored under its own
    identifier, a pair manager under one entry per pair.
    """

    def __init__(
        self,
        state_dir: str = "data/hedge_ratio_states",
        backup_retention_days: int = 7
    ):
        self.state_dir = Path(state_dir)
        self.backup_retention_days = backup_retention_days

        self.state_dir.mkdir(parents=True, exist_ok=True)

        logger.info(
            "State manager initialized",
            state_dir=str(self.state_dir),
            backup_retention_days=backup_retention_days
        )

    def state_file(self, identifier: str) -> Path:
        return self.state_dir / f"{identifier}.joblib"

    def has_state(self, identifier: str) -> bool:
        return self.state_file(identifier).exists()

    def save_state(
        self,
        filter_obj: HedgeRatioFilter,
        identifier: str,
        create_backup: bool = True
    ) -> bool:
        """Persist one filter. Returns False if the file could not be written."""
        entries = {identifier: encode_filter(filter_obj)}
        return self._write(identifier, KIND_FILTER, entries, create_backup)

    def save_pair_filters(
        self,
        pair_filters: PairHedgeRatioFilters,
        identifier: str = "pair_filters",
        create_backup: bool = True
    ) -> bool:
        """Persist every pair of a manager, with its asset names, into one file."""
        entries = {}
        for pair_id, filter_obj in pair_filters.filters.items():
            config = pair_filters.pair_configs[pair_id]
            entries[pair_id] = {
                **encode_filter(filter_obj),
                'assets': {'asset_a': config['asset_a'], 'asset_b': config['asset_b']}
            }
        return self._write(identifier, KIND_PAIRS, entries, create_backup)

    def load_state(
        self,
        identifier: str,
        filter_obj: Optional[HedgeRatioFilter] = None
    ) -> Optional[HedgeRatioFilter]:
        """
        Restore one filter, optionally into an existing instance.

        Returns None when the file is missing, unreadable, malformed or was
        saved with different parameters than filter_obj. In every such case
        filter_obj is left untouched.
        """
        try:
            entries = self._read(identifier, KIND_FILTER)
            if entries is None:
                return None
            if len(entries) != 1:
                raise StateFormatError(f"Expected one filter entry, found {len(entries)}")
            (entry,) = entries.values()
            return restore_filter(entry, filter_obj)

        except Exception as e:
            logger.error("Failed to load filter state", identifier=identifier, error=str(e), exc_info=True)
            return None

    def load_pair_filters(
        self,
        identifier: str = "pair_filters"
    ) -> Optional[PairHedgeRatioFilters]:
        """Restore a pair manager. Any bad entry fails the whole load."""
        try:
            entries = self._read(identifier, KIND_PAIRS)
            if entries is None:
                return None

            pair_filters = PairHedgeRatioFilters()
            for pair_id, entry in entries.items():
                filter_obj = pair_filters.add_pair(pair_id, **entry['assets'], **entry['params'])
                restore_filter(entry, filter_obj)
            return pair_filters

        except Exception as e:
            logger.error("Failed to load pair filters", identifier=identifier, error=str(e), exc_info=True)
            return None

    def _write(
        self,
        identifier: str,
        kind: str,
        entries: Dict[str, Dict[str, Any]],
        create_backup: bool
    ) -> bool:
        state_file = self.state_file(identifier)
        payload = {
            'metadata': {
                'kind': kind,
                'identifier': identifier,
                'saved_at': datetime.now(timezone.utc),
                'version': STATE_VERSION
            },
            'filters': entries
        }

        try:
            if create_backup and state_file.exists():
                self._create_backup(state_file)
            joblib.dump(payload, state_file, compress=3)
        except OSError as e:
            logger.error("Failed to write state file", identifier=identifier, kind=kind, error=str(e))
            return False

        logger.info(
            "State file written",
            identifier=identifier,
            kind=kind,
            filters=len(entries),
            n_observations=sum(entry['state']['n_observations'] for entry in entries.values())
        )
        return True

    def _read(self, identifier: str, kind: str) -> Optional[Dict[str, Dict[str, Any]]]:
        """Load and check a payload. Returns None only when the file is absent."""
        state_file = self.state_file(identifier)
        if not state_file.exists():
            logger.warning("State file not found", identifier=identifier, file=str(state_file))
            return None

        payload = joblib.load(state_file)
        metadata = self._check_payload(payload)
        if metadata['kind'] != kind:
            raise StateFormatError(f"{state_file} holds '{metadata['kind']}' state, expected '{kind}'")

        logger.info(
            "State file read",
            identifier=identifier,
            kind=kind,
            filters=len(payload['filters']),
            saved_at=metadata['saved_at'].isoformat()
        )
        return payload['filters']

    @staticmethod
    def _check_payload(payload: Any) -> Dict[str, Any]:
        """Validate the envelope of a payload and return its metadata."""
        if not isinstance(payload, dict):
            raise StateFormatError(f"Payload is a {type(payload).__name__}, not a dict")
        metadata = payload.get('metadata')
        if not isinstance(metadata, dict):
            raise StateFormatError("Payload has no metadata")
        if metadata.get('version') != STATE_VERSION:
            raise StateFormatError(f"Unsupported state version: {metadata.get('version')!r}")
        if metadata.get('kind') not in (KIND_FILTER, KIND_PAIRS):
            raise StateFormatError(f"Unknown state kind: {metadata.get('kind')!r}")
        if not isinstance(metadata.get('saved_at'), datetime):
            raise StateFormatError("Payload metadata has no saved_at timestamp")
        if not isinstance(payload.get('filters'), dict):
            raise StateFormatError("Payload has no filter entries")
        return metadata

    def _create_backup(self, state_file: Path) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        backup_file = state_file.with_name(f"{state_file.stem}_backup_{stamp}.joblib")
        shutil.copy2(state_file, backup_file)
        logger.debug("State backup created", backup=str(backup_file))

    def cleanup_old_backups(self) -> int:
        """Delete backups older than the retention period. Returns how many went."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=self.backup_retention_days)).timestamp()
        removed = 0

        for backup_file in self.state_dir.glob("*_backup_*.joblib"):
            try:
                if backup_file.stat().st_mtime < cutoff:
                    backup_file.unlink()
                    removed += 1
            except OSError as e:
                logger.warning("Failed to remove backup", file=str(backup_file), error=str(e))

        if removed:
            logger.info("Old backups removed", count=removed)
        return removed

    def get_available_states(self) -> Dict[str, Dict[str, Any]]:
        """Summaries of the readable state files, keyed by identifier."""
        states = {}

        for state_file in sorted(self.state_dir.glob("*.joblib")):
            if "_backup_" in state_file.stem:
                continue

            try:
                payload = joblib.load(state_file)
                metadata = self._check_payload(payload)
                entries = payload['filters']
                states[state_file.stem] = {
                    'file': str(state_file),
                    'kind': metadata['kind'],
                    'filters': sorted(entries),
                    'n_observations': sum(entry['state']['n_observations'] for entry in entries.values()),
                    'saved_at': metadata['saved_at'],
                    'version': metadata['version']
                }
            except Exception as e:
                logger.warning("Skipping unreadable state file", file=str(state_file), error=str(e))

        return states
