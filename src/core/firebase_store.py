"""Firebase Realtime Database implementation of the hierarchical store."""

import asyncio
import logging
from typing import Any

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError

from src.core.config import Settings
from src.core.errors import UpstreamError, ValidationFailed
from src.core.store import (
    ABORT,
    TransactionResult,
    TreeStore,
    Updater,
    WatchCallback,
    WatchHandle,
    WatchRegistry,
    join_path,
    normalize_value,
)


logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "grocerease"


def get_firebase_app(settings: Settings) -> firebase_admin.App:
    """Return the process's Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        pass

    credential_path = settings.require_credential("firebase_credentials_path", "Firebase service account")
    options = {}
    if settings.firebase_database_url:
        options["databaseURL"] = settings.firebase_database_url
    app = firebase_admin.initialize_app(credentials.Certificate(credential_path), options, name=FIREBASE_APP_NAME)
    logger.info("Firebase app initialized", extra={"database_url": settings.firebase_database_url})
    return app


class FirebaseTreeStore(TreeStore):
    """Hierarchical store on top of firebase-admin's Realtime Database client.

    The SDK is blocking, so every call runs in a worker thread. Listener events arrive on
    SDK threads and are marshalled back onto the event loop as full snapshots.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._app: firebase_admin.App | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._watches = WatchRegistry()
        self._registrations: dict[int, Any] = {}

    async def start(self) -> None:
        self._settings.require_credential("firebase_database_url", "Firebase Realtime Database URL")
        self._app = get_firebase_app(self._settings)
        self._loop = asyncio.get_running_loop()

    async def close(self) -> None:
        for handle in self._watches.related(""):
            handle.close()

    def _ref(self, path: str) -> db.Reference:
        if self._app is None:
            raise UpstreamError("Store is not started")
        return db.reference(f"/{join_path(path)}", app=self._app)

    async def _run(self, operation: str, path: str, func: Any, *args: Any) -> Any:  # noqa: ANN401
        try:
            return await asyncio.to_thread(func, *args)
        except FirebaseError as e:
            logger.error(f"{operation}_failed", extra={"path": path, "error": str(e)})
            raise UpstreamError(f"Failed to {operation.replace('_', ' ')} {path}: {e}") from e

    async def read_path(self, path: str) -> Any:  # noqa: ANN401
        value = await self._run("read_path", path, self._ref(path).get)
        return normalize_value(value)

    async def write_path(self, path: str, value: Any) -> None:  # noqa: ANN401
        normalized = normalize_value(value)
        ref = self._ref(path)
        if normalized is None:
            await self._run("write_path", path, ref.delete)
        else:
            await self._run("write_path", path, ref.set, normalized)

    async def patch_path(self, path: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        # update() treats None children as deletions, matching the store contract.
        await self._run("patch_path", path, self._ref(path).update, {key: normalize_value(v) for key, v in fields.items()})

    async def transact(self, path: str, updater: Updater) -> TransactionResult:
        ref = self._ref(path)
        max_retries = self._settings.transaction_max_retries

        current, etag = await self._run("transact", path, lambda: ref.get(etag=True))
        for attempt in range(1, max_retries + 1):
            current = normalize_value(current)
            new_value = updater(current)
            if new_value is ABORT:
                return TransactionResult(committed=False, value=current)

            normalized = normalize_value(new_value)
            if normalized is None:
                raise ValidationFailed(f"Transactions on {path} cannot delete the node")

            success, current, etag = await self._run(
                "transact", path, lambda value=normalized, tag=etag: ref.set_if_unchanged(tag, value)
            )
            if success:
                logger.info("Transaction committed", extra={"path": path, "attempt": attempt})
                return TransactionResult(committed=True, value=normalize_value(current))
            logger.info("Transaction conflict, retrying", extra={"path": path, "attempt": attempt})

        raise UpstreamError(f"Transaction on {path} aborted after {max_retries} conflicting attempts")

    async def watch(self, path: str, callback: WatchCallback) -> WatchHandle:
        if self._loop is None:
            raise UpstreamError("Store is not started")
        loop = self._loop
        ref = self._ref(path)

        def _on_close(closed: WatchHandle) -> None:
            registration = self._registrations.pop(id(closed), None)
            if registration is not None:
                registration.close()

        handle = self._watches.add(path, callback, on_close=_on_close)

        def _on_event(_event: db.Event) -> None:
            # Events carry diffs; viewers always get the full value.
            try:
                snapshot = normalize_value(ref.get())
            except FirebaseError:
                logger.exception("watch_snapshot_failed", extra={"path": handle.path})
                return
            loop.call_soon_threadsafe(WatchRegistry.deliver, handle, snapshot)

        try:
            self._registrations[id(handle)] = await asyncio.to_thread(ref.listen, _on_event)
        except FirebaseError as e:
            handle.close()
            raise UpstreamError(f"Failed to watch {path}: {e}") from e
        logger.info("Watch registered", extra={"path": handle.path, "watchers": self._watches.count(handle.path)})
        return handle

    def active_watch_count(self, path: str | None = None) -> int:
        return self._watches.count(path)
