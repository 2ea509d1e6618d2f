"""Credential persistence for the session core.

This module introduces a *narrow* async secret interface
(:class:`SecretStore`), two backends (:class:`MemorySecretStore` and the
JSON-file :class:`DiskSecretStore`) and the typed :class:`CredentialStore`
façade the rest of the package talks to.  The design follows these goals:

* **Atomicity** – disk writes use *temp-file + os.replace*, one file per key.
* **Non-blocking** – disk I/O runs in a worker thread.
* **Graceful degradation** – backend failures surface as
  :class:`StorageUnavailableError`; the typed readers treat them as "absent".
* **Filename safety** – key names are slugified before hitting the filesystem.

Environment variables
---------------------
FAMLYNOOK_SESSION_DIR
    Base directory for persisted secrets.
    Defaults to ``~/.famlynook/session`` when unset.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

from famlynook.session.errors import StorageUnavailableError
from famlynook.session.models import Credential, SessionMeta

_LOG = logging.getLogger("famlynook.session.store")


class SecretName(str, Enum):
    """Logical names of every persisted session secret."""

    AUTH_TOKEN = "auth_token"
    REFRESH_TOKEN = "refresh_token"
    USER_DATA = "user"
    REGISTRATION_TIME = "registration_time"
    IS_NEW_ACCOUNT = "is_new_account"
    SELECTED_FAMILY_ID = "selected_family_id"


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _slug(text: str, max_len: int = 80) -> str:
    """Filesystem-safe slug."""
    text = (text or "").strip().lower()
    text = re.sub(r"[^a-z0-9._-]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text[:max_len] or "unknown"


def _key(name: str | SecretName) -> str:
    return name.value if isinstance(name, SecretName) else str(name)


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class SecretStore(Protocol):
    """Minimal async key/value contract over named secrets."""

    async def get(self, name: str | SecretName) -> str | None: ...

    async def set(self, name: str | SecretName, value: str) -> None: ...

    async def delete(self, name: str | SecretName) -> None: ...


class MemorySecretStore(SecretStore):
    """Dict-backed :class:`SecretStore` for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, name: str | SecretName) -> str | None:
        return self._data.get(_key(name))

    async def set(self, name: str | SecretName, value: str) -> None:
        self._data[_key(name)] = value

    async def delete(self, name: str | SecretName) -> None:
        self._data.pop(_key(name), None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of every stored secret."""
        return dict(self._data)


class DiskSecretStore(SecretStore):
    """JSON-file implementation of :class:`SecretStore`."""

    def __init__(self, base_dir: str | os.PathLike | None = None) -> None:
        self.base_dir = Path(
            base_dir
            or os.getenv("FAMLYNOOK_SESSION_DIR")
            or Path.home() / ".famlynook" / "session"
        ).expanduser()

    def _path(self, name: str | SecretName) -> Path:
        return self.base_dir / f"{_slug(_key(name))}.json"

    def _read(self, name: str | SecretName) -> str | None:
        path = self._path(name)
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        value = data.get("value")
        return None if value is None else str(value)

    def _write(self, name: str | SecretName, value: str) -> None:
        _atomic_write(self._path(name), {"value": value})

    def _remove(self, name: str | SecretName) -> None:
        self._path(name).unlink(missing_ok=True)

    async def get(self, name: str | SecretName) -> str | None:
        try:
            return await asyncio.to_thread(self._read, name)
        except (OSError, ValueError) as exc:
            raise StorageUnavailableError(f"Cannot read {_key(name)}: {exc}") from exc

    async def set(self, name: str | SecretName, value: str) -> None:
        try:
            await asyncio.to_thread(self._write, name, value)
        except (OSError, ValueError) as exc:
            raise StorageUnavailableError(f"Cannot write {_key(name)}: {exc}") from exc

    async def delete(self, name: str | SecretName) -> None:
        try:
            await asyncio.to_thread(self._remove, name)
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot delete {_key(name)}: {exc}") from exc


# --------------------------------------------------------------------------- #
# Typed façade                                                                #
# --------------------------------------------------------------------------- #


class CredentialStore:
    """Single source of truth for the session's tokens and metadata.

    Readers swallow :class:`StorageUnavailableError` and report the value as
    absent; writers let it propagate so the caller can decide.
    """

    def __init__(self, secrets: SecretStore | None = None) -> None:
        self.secrets: SecretStore = secrets if secrets is not None else MemorySecretStore()

    # ----- raw contract ---------------------------------------------------- #
    async def get(self, name: str | SecretName) -> str | None:
        return await self.secrets.get(name)

    async def set(self, name: str | SecretName, value: str) -> None:
        await self.secrets.set(name, value)

    async def delete(self, name: str | SecretName) -> None:
        await self.secrets.delete(name)

    async def _safe_get(self, name: SecretName) -> str | None:
        try:
            return await self.secrets.get(name)
        except StorageUnavailableError as exc:
            _LOG.warning("Treating %s as absent: %s", name.value, exc)
            return None

    # ----- credentials ----------------------------------------------------- #
    async def access_token(self) -> str | None:
        return await self._safe_get(SecretName.AUTH_TOKEN)

    async def refresh_token(self) -> str | None:
        return await self._safe_get(SecretName.REFRESH_TOKEN)

    async def load_credential(self) -> Credential | None:
        access_token = await self.access_token()
        if not access_token:
            return None
        return Credential(access_token=access_token, refresh_token=await self.refresh_token())

    async def save_credential(
        self,
        credential: Credential,
        *,
        is_current: Callable[[], bool] | None = None,
    ) -> bool:
        """Persist *credential*; an absent refresh token leaves the stored one alone.

        *is_current* is checked before each write and once more at the end.
        When it turns false the remaining writes are skipped, values this call
        already wrote are removed again, and ``False`` is returned.
        """
        writes = [(SecretName.AUTH_TOKEN, credential.access_token)]
        if credential.refresh_token:
            writes.append((SecretName.REFRESH_TOKEN, credential.refresh_token))

        written: list[tuple[SecretName, str]] = []
        for name, value in writes:
            if is_current is not None and not is_current():
                break
            await self.secrets.set(name, value)
            written.append((name, value))
        if is_current is None or is_current():
            return True
        await self._discard(written)
        return False

    # ----- user record ----------------------------------------------------- #
    async def load_user(self) -> dict[str, Any] | None:
        raw = await self._safe_get(SecretName.USER_DATA)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            _LOG.warning("Stored user record is not valid JSON; ignoring it")
            return None
        return data if isinstance(data, dict) else None

    async def save_user(self, user: dict[str, Any] | None) -> None:
        await self.secrets.set(SecretName.USER_DATA, json.dumps(user))

    async def update_user(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Merge *changes* into the stored user record and return the result."""
        user = {**(await self.load_user() or {}), **changes}
        await self.save_user(user)
        return user

    # ----- registration metadata ------------------------------------------ #
    async def mark_registration(self, now_ms: int, *, is_new_account: bool = True) -> None:
        await self.secrets.set(SecretName.REGISTRATION_TIME, str(now_ms))
        await self.secrets.set(SecretName.IS_NEW_ACCOUNT, "true" if is_new_account else "false")

    async def load_session_meta(self) -> SessionMeta:
        raw_time = await self._safe_get(SecretName.REGISTRATION_TIME)
        raw_flag = await self._safe_get(SecretName.IS_NEW_ACCOUNT)
        registered_at: int | None = None
        if raw_time:
            try:
                registered_at = int(raw_time)
            except ValueError:
                _LOG.warning("Stored registration time %r is not an integer", raw_time)
        return SessionMeta(registered_at_ms=registered_at, is_new_account=raw_flag == "true")

    # ----- selected family ------------------------------------------------- #
    async def selected_family_id(self) -> str | None:
        return await self._safe_get(SecretName.SELECTED_FAMILY_ID)

    async def set_selected_family_id(self, family_id: str | int) -> None:
        await self.secrets.set(SecretName.SELECTED_FAMILY_ID, str(family_id))

    # ----- maintenance ----------------------------------------------------- #
    async def clear(self) -> None:
        """Delete every session secret.

        All names are attempted even if one fails; the first failure is
        re-raised afterwards.
        """
        failure: StorageUnavailableError | None = None
        for name in SecretName:
            try:
                await self.secrets.delete(name)
            except StorageUnavailableError as exc:
                _LOG.warning("Could not delete %s: %s", name.value, exc)
                failure = failure or exc
        if failure is not None:
            raise failure

    # ---------------- internal helpers --------------------------------- #
    async def _discard(self, written: list[tuple[SecretName, str]]) -> None:
        # Only remove values nobody has overwritten since.
        for name, value in written:
            if await self._safe_get(name) == value:
                await self.secrets.delete(name)
                _LOG.debug("Discarded stale %s", name.value)
