"""
Sliding-window rate limiting for contact form submissions.

The limiter keeps one entry per admitted attempt, keyed by
``<identifier>_<timestamp>``, in a pluggable store. Expired entries are purged
lazily on every check.

The check is a read-modify-write without locking: two requests from the same
client arriving at the same moment can both be admitted. This is a known
weak-consistency property, not a correctness target.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.orm import sessionmaker

from src.shared.contact.database import ContactRateLimit
from src.shared.contact.input_validation import sanitize_log_text


class RateLimitStore:
    """Interface of the durable attempt store used by RateLimiter."""

    def entries(self) -> Dict[str, float]:
        """Return all stored attempts as a mapping of key to timestamp."""
        raise NotImplementedError

    def discard(self, keys: Iterable[str]) -> None:
        raise NotImplementedError

    def add(self, key: str, identifier: str, timestamp: float) -> None:
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store, used by tests and single-process setups."""

    def __init__(self):
        self._data: Dict[str, float] = {}

    def entries(self) -> Dict[str, float]:
        return dict(self._data)

    def discard(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def add(self, key: str, identifier: str, timestamp: float) -> None:
        self._data[key] = timestamp


class JsonFileRateLimitStore(RateLimitStore):
    """
    Single JSON file holding ``{"<ip>_<timestamp>": timestamp}``.

    Every mutation rewrites the whole file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, float]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logging.warning(f"Rate limit file {self.path} unreadable, starting empty: {str(e)}")
            return {}
        if not isinstance(data, dict):
            logging.warning(f"Rate limit file {self.path} does not hold a mapping, starting empty")
            return {}

        entries = {}
        for key, value in data.items():
            try:
                entries[str(key)] = float(value)
            except (TypeError, ValueError):
                logging.warning(f"Skipping malformed rate limit entry {sanitize_log_text(str(key), 100)}")
        return entries

    def _save(self, data: Dict[str, float]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def entries(self) -> Dict[str, float]:
        return self._load()

    def discard(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        data = self._load()
        for key in keys:
            data.pop(key, None)
        self._save(data)

    def add(self, key: str, identifier: str, timestamp: float) -> None:
        data = self._load()
        data[key] = timestamp
        self._save(data)


class SqlRateLimitStore(RateLimitStore):
    """
    Database-backed store that works across multiple worker processes.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def entries(self) -> Dict[str, float]:
        db = self.session_factory()
        try:
            rows = db.query(ContactRateLimit.key, ContactRateLimit.attempted_at).all()
            return {key: attempted_at for key, attempted_at in rows}
        finally:
            db.close()

    def discard(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        db = self.session_factory()
        try:
            db.query(ContactRateLimit).filter(
                ContactRateLimit.key.in_(keys)
            ).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def add(self, key: str, identifier: str, timestamp: float) -> None:
        db = self.session_factory()
        try:
            # merge: a second attempt in the same instant overwrites, like a mapping would
            db.merge(ContactRateLimit(key=key, identifier=identifier, attempted_at=timestamp))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class RateLimiter:
    """At most ``max_attempts`` admitted attempts per identifier per trailing ``period`` seconds."""

    def __init__(
        self,
        store: RateLimitStore,
        max_attempts: int,
        period: float,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.period = period
        self.clock = clock

    @staticmethod
    def make_key(identifier: str, timestamp: float) -> str:
        return f"{identifier}_{timestamp}"

    def admit(self, identifier: str, now: Optional[float] = None) -> bool:
        """
        Record an attempt for ``identifier`` if it is still within its limit.

        Returns:
            True if admitted (and recorded), False if the limit is reached
        """
        if now is None:
            now = self.clock()

        entries = self.store.entries()

        # Entries exactly `period` seconds old are already expired
        expired = [key for key, ts in entries.items() if now - ts >= self.period]
        if expired:
            self.store.discard(expired)

        prefix = f"{identifier}_"
        attempts = sum(
            1 for key, ts in entries.items()
            if now - ts < self.period and key.startswith(prefix)
        )

        if attempts >= self.max_attempts:
            logging.warning(
                f"Contact rate limit reached for {sanitize_log_text(identifier, max_length=64)} "
                f"({attempts} attempts in {self.period}s)"
            )
            return False

        key = base_key = self.make_key(identifier, now)
        suffix = 1
        # Two attempts in the same instant must not collapse into one entry
        while key in entries:
            key = f"{base_key}_{suffix}"
            suffix += 1

        self.store.add(key, identifier, now)
        return True
