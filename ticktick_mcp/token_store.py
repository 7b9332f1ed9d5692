"""
File-backed storage for the TickTick OAuth credential record.

The record (client credentials plus the current token pair) is the single
source of truth for every outbound API request, so tokens survive process
restarts and a refresh is visible to the next request immediately.

Two on-disk formats are supported, chosen by file suffix:

- ``*.json``: a JSON object keyed by the ``TICKTICK_*`` names
- anything else: ``KEY=VALUE`` dotenv lines, read and written with python-dotenv

Only one process is expected to own the file at a time. Within a process all
reads and writes are serialized through this class.
"""

import json
import logging
import os
import shutil
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

from dotenv import dotenv_values, set_key, unset_key

from .errors import ConfigError
from .models import ClientCredentials, PersistedAuthRecord, TokenPair

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "TICKTICK_ACCESS_TOKEN"
REFRESH_TOKEN_KEY = "TICKTICK_REFRESH_TOKEN"
CLIENT_ID_KEY = "TICKTICK_CLIENT_ID"
CLIENT_SECRET_KEY = "TICKTICK_CLIENT_SECRET"
ISSUED_AT_KEY = "TICKTICK_TOKEN_ISSUED_AT"
EXPIRES_AT_KEY = "TICKTICK_TOKEN_EXPIRES_AT"

MANAGED_KEYS = (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    CLIENT_ID_KEY,
    CLIENT_SECRET_KEY,
    ISSUED_AT_KEY,
    EXPIRES_AT_KEY,
)


def _parse_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer timestamp in token file: {value!r}")
        return None


def record_from_mapping(values: dict[str, Any]) -> PersistedAuthRecord:
    return PersistedAuthRecord(
        access_token=str(values.get(ACCESS_TOKEN_KEY) or ""),
        refresh_token=str(values.get(REFRESH_TOKEN_KEY) or ""),
        client_id=str(values.get(CLIENT_ID_KEY) or ""),
        client_secret=str(values.get(CLIENT_SECRET_KEY) or ""),
        issued_at=_parse_int(values.get(ISSUED_AT_KEY)),
        expires_at=_parse_int(values.get(EXPIRES_AT_KEY)),
    )


def record_to_mapping(record: PersistedAuthRecord) -> dict[str, str]:
    """Map a record to file keys. Blank fields are left out."""
    values = {
        ACCESS_TOKEN_KEY: record.access_token,
        REFRESH_TOKEN_KEY: record.refresh_token,
        CLIENT_ID_KEY: record.client_id,
        CLIENT_SECRET_KEY: record.client_secret,
    }
    if record.issued_at is not None:
        values[ISSUED_AT_KEY] = str(record.issued_at)
    if record.expires_at is not None:
        values[EXPIRES_AT_KEY] = str(record.expires_at)
    return {key: value for key, value in values.items() if value}


class TokenStore:
    """Durable single-writer persistence of the credential record."""

    def __init__(self, path: str | Path):
        """
        Initialize token storage.

        Args:
            path: Location of the token file. Parent directories are created
                  on the first save.
        """
        self.path = Path(path).expanduser()
        # Reentrant: callers hold it across load, refresh and update_tokens
        self.lock = threading.RLock()

    @property
    def is_json(self) -> bool:
        return self.path.suffix.lower() == ".json"

    def load(self) -> PersistedAuthRecord:
        """
        Load the stored record.

        Returns:
            The persisted record, or an empty record if no file exists yet

        Raises:
            ConfigError: If the file exists but cannot be read or parsed
        """
        with self.lock:
            if not self.path.exists():
                logger.debug(f"No token file at {self.path}, returning empty record")
                return PersistedAuthRecord()

            try:
                if self.is_json:
                    values = json.loads(self.path.read_text(encoding="utf-8") or "{}")
                    if not isinstance(values, dict):
                        raise ConfigError(f"Token file {self.path} does not contain a JSON object")
                else:
                    values = dotenv_values(self.path, encoding="utf-8")
            except OSError as e:
                raise ConfigError(f"Error reading token file {self.path}: {e}") from e
            except json.JSONDecodeError as e:
                raise ConfigError(f"Token file {self.path} is not valid JSON: {e}") from e

            return record_from_mapping(values)

    def save(self, record: PersistedAuthRecord) -> None:
        """
        Write the record, replacing the previous one.

        The incoming record is merged with the current file contents first: a
        blank refresh token or blank client credentials never overwrite values
        already stored.

        Raises:
            ConfigError: If the file cannot be written
        """
        with self.lock:
            self._write(self.load().merged_with(record))
            logger.debug(f"Saved credential record to {self.path}")

    def update_tokens(
        self, pair: TokenPair, credentials: ClientCredentials | None = None
    ) -> PersistedAuthRecord:
        """
        Store a new token pair (and optionally client credentials).

        The read-modify-write runs under the store lock so a concurrent reader
        in this process never sees a half-applied update.

        Returns:
            The record as persisted
        """
        with self.lock:
            record = self.load().with_tokens(pair, credentials)
            self.save(record)
            logger.info(
                f"Stored access token {pair.access_token[:8]}... "
                f"(refresh token {'updated' if pair.refresh_token else 'kept'})"
            )
            return record

    def clear_tokens(self) -> PersistedAuthRecord:
        """
        Remove the stored access and refresh tokens (logout).

        Client credentials stay in the file so the next authorization does not
        need them again.

        Returns:
            The record as persisted
        """
        with self.lock:
            record = replace(
                self.load(), access_token="", refresh_token="", issued_at=None, expires_at=None
            )
            if self.path.exists():
                self._write(record)
            logger.info(f"Cleared stored tokens in {self.path}")
            return record

    def _write(self, record: PersistedAuthRecord) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.touch(mode=0o600, exist_ok=True)
            if self.is_json:
                tmp_path.write_text(
                    json.dumps(record_to_mapping(record), indent=2), encoding="utf-8"
                )
            else:
                self._write_dotenv(tmp_path, record)
            os.chmod(tmp_path, 0o600)
            # Single replace so a failed write leaves the previous file untouched
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise ConfigError(f"Error writing token file {self.path}: {e}") from e

    def _write_dotenv(self, tmp_path: Path, record: PersistedAuthRecord) -> None:
        """Stage the updated dotenv file at ``tmp_path``, keeping unrelated keys."""
        if self.path.exists():
            shutil.copyfile(self.path, tmp_path)
        else:
            tmp_path.write_text("", encoding="utf-8")

        existing = dotenv_values(tmp_path, encoding="utf-8")
        values = record_to_mapping(record)

        for key, value in values.items():
            set_key(tmp_path, key, value, encoding="utf-8")

        for key in MANAGED_KEYS:
            if key not in values and key in existing:
                unset_key(tmp_path, key, encoding="utf-8")
