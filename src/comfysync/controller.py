"""Connection state machine and catalog synchronization."""

from __future__ import annotations

import hashlib
import logging
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import requests

from .catalog import SYNC_ORDER, CatalogManager, CategoryDefinition, UpdateChannel
from .client import InferenceClient
from .config import Settings
from .errors import FailureKind, InferenceClientError, NotConnected, classify_failure
from .index import IndexEvents, LocalIndex
from .invoker import SafeInvoker
from .transport import SessionTransport, Transport, build_pipeline
from .urls import DEFAULT_HOST, server_uri, warn_if_insecure

logger = logging.getLogger(__name__)

TransportFactory = Callable[[Settings], Transport]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class BackendKind(str, Enum):
    REMOTE = "remote"                  # any server reachable over HTTP
    LOCAL_PACKAGE = "local_package"    # a ComfyUI install on this machine


@dataclass(frozen=True)
class BackendTarget:
    """What to connect to."""
    kind: BackendKind
    uri: str
    package_path: Optional[Path] = None

    @classmethod
    def remote(cls, uri: str) -> "BackendTarget":
        return cls(BackendKind.REMOTE, uri)

    @classmethod
    def local_package(
        cls,
        package_path: Union[str, Path],
        host: str = "",
        port: str = "",
    ) -> "BackendTarget":
        """A local install, reached over loopback at its launch host/port."""
        return cls(
            BackendKind.LOCAL_PACKAGE,
            server_uri(host or DEFAULT_HOST, port),
            Path(package_path),
        )

    @property
    def input_dir(self) -> Optional[Path]:
        if self.kind == BackendKind.LOCAL_PACKAGE and self.package_path is not None:
            return self.package_path / "input"
        return None


@dataclass(frozen=True)
class Connection:
    """Snapshot of the connection."""
    state: ConnectionState
    base_uri: str = ""
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class SyncReport:
    """Outcome of one full sync."""
    synced: Dict[str, int] = field(default_factory=dict)    # category -> changes applied
    failed: Dict[str, str] = field(default_factory=dict)    # category -> failure kind
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total_changes(self) -> int:
        return sum(self.synced.values())

    def to_dict(self) -> dict:
        return {
            "synced": dict(self.synced),
            "failed": dict(self.failed),
            "skipped": list(self.skipped),
            "cancelled": self.cancelled,
            "total_changes": self.total_changes,
        }


def default_transport_factory(settings: Settings) -> Transport:
    return SessionTransport(timeout_s=settings.timeout_s)


def upload_name(data: bytes, suffix: str = ".png") -> str:
    """Content-derived file name, so re-uploading an image reuses its name."""
    digest = hashlib.sha256(data).digest()
    return f"{uuid.UUID(bytes=digest[:16])}{suffix}"


class ConnectionController:
    """Owns the backend connection and keeps the catalog in step with it.

    ``connect``, ``disconnect`` and ``sync_all`` exclude each other: a connect
    while Connecting or Connected is a no-op. disconnect abandons a pending
    connect, and waits for an in-flight sync before clearing remote records.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        index: Optional[LocalIndex] = None,
        events: Optional[IndexEvents] = None,
        catalog: Optional[CatalogManager] = None,
        channel: Optional[UpdateChannel] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.settings = settings or Settings()
        self.index = index
        self.catalog = catalog or CatalogManager(channel)
        self.transport_factory = transport_factory or default_transport_factory

        self._state = ConnectionState.DISCONNECTED
        self._client: Optional[InferenceClient] = None
        self._target: Optional[BackendTarget] = None
        # Current connect attempt and its client, until it settles
        self._attempt: Optional[object] = None
        self._pending: Optional[InferenceClient] = None
        self._state_lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self.last_report: Optional[SyncReport] = None

        self.events = events
        self._unsubscribe: Optional[Callable[[], None]] = None
        if events is not None:
            self._unsubscribe = events.subscribe(self._on_index_changed)

    # --- State ---

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def client(self) -> Optional[InferenceClient]:
        with self._state_lock:
            return self._client

    @property
    def target(self) -> Optional[BackendTarget]:
        with self._state_lock:
            return self._target

    @property
    def connection(self) -> Connection:
        with self._state_lock:
            state = self._state
            client = self._client
        if client is None:
            return Connection(state)
        pipeline_auth = getattr(client.transport, "auth", None)
        headers = dict(pipeline_auth.headers) if pipeline_auth is not None else {}
        return Connection(state, client.base_uri, headers)

    def _require_client(self) -> InferenceClient:
        with self._state_lock:
            if self._state != ConnectionState.CONNECTED or self._client is None:
                raise NotConnected("Client is not connected")
            return self._client

    # --- Connect / disconnect ---

    def _end_attempt(
        self,
        attempt: object,
        client: Optional[InferenceClient] = None,
        target: Optional[BackendTarget] = None,
    ) -> bool:
        """Settle a connect attempt. False if disconnect abandoned it first."""
        with self._state_lock:
            if self._attempt is not attempt:
                return False
            self._attempt = None
            self._pending = None
            if client is None:
                self._state = ConnectionState.DISCONNECTED
            else:
                self._client = client
                self._target = target
                self._state = ConnectionState.CONNECTED
            return True

    def connect(
        self,
        target: Optional[BackendTarget] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """Handshake with the backend, then sync every category.

        Returns False without doing anything when already Connecting or
        Connected, and False when ``disconnect`` abandons the attempt. A failed
        handshake raises the classified
        :class:`~comfysync.errors.SyncFailure` and leaves the state
        Disconnected.
        """
        attempt = object()
        with self._state_lock:
            if self._state != ConnectionState.DISCONNECTED:
                logger.debug("Connect ignored; state is %s", self._state.value)
                return False
            self._state = ConnectionState.CONNECTING
            self._attempt = attempt

        try:
            target = target or BackendTarget.remote(self.settings.server_uri())
            logger.debug("Connecting to %s...", target.uri)
            warn_if_insecure(target.uri)

            pipeline = build_pipeline(
                self.transport_factory(self.settings),
                self.settings.auth_context(),
            )
            client = InferenceClient(target.uri, pipeline)
        except BaseException:
            self._end_attempt(attempt)
            raise

        with self._state_lock:
            current = self._attempt is attempt
            if current:
                self._pending = client
        if not current:
            client.close()
            logger.info("Connect to %s abandoned", target.uri)
            return False

        try:
            client.get_system_stats(cancel=cancel)
        except (InferenceClientError, requests.RequestException) as e:
            failure = classify_failure(e)
            client.close()
            if not self._end_attempt(attempt):
                logger.info("Connect to %s abandoned", target.uri)
                return False
            logger.error(
                "Handshake with %s failed: %s",
                target.uri,
                failure,
                extra={"operation": "Handshake", **failure.diagnostic()},
            )
            if failure is e:
                raise
            raise failure from e
        except BaseException:
            client.close()
            self._end_attempt(attempt)
            raise

        if not self._end_attempt(attempt, client, target):
            client.close()
            logger.info("Connect to %s abandoned", target.uri)
            return False
        logger.info("Connected to %s", target.uri)

        self._sync(client, cancel)
        return True

    def disconnect(self) -> bool:
        """Close the connection and drop remote records.

        No-op when already Disconnected. While Connecting, the pending attempt
        is abandoned: its transport is closed and it never becomes Connected.
        """
        with self._state_lock:
            if self._state == ConnectionState.DISCONNECTED:
                return False
            if self._state == ConnectionState.CONNECTING:
                client = self._pending
                self._attempt = None
                self._pending = None
            else:
                client = self._client
            self._client = None
            self._target = None
            self._state = ConnectionState.DISCONNECTED

        # An in-flight sync must finish before remote records are cleared
        with self._sync_lock:
            if client is not None:
                client.close()
            self.catalog.clear_remote()
            self.catalog.reset_local(self.index)

        logger.info("Disconnected")
        return True

    def shutdown(self) -> None:
        self.disconnect()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.catalog.channel.stop()

    # --- Sync ---

    def reset_local(self) -> None:
        """Recompute Local and Downloadable sources. Works in any state."""
        self.catalog.reset_local(self.index)

    def sync_all(self, cancel: Optional[threading.Event] = None) -> SyncReport:
        """Fetch every remote-backed category, one after another."""
        return self._sync(self._require_client(), cancel)

    def _still_current(self, client: InferenceClient) -> bool:
        with self._state_lock:
            return self._client is client and self._state == ConnectionState.CONNECTED

    def _sync(self, client: InferenceClient, cancel: Optional[threading.Event]) -> SyncReport:
        report = SyncReport()
        invoker = SafeInvoker(client.base_uri)

        with self._sync_lock:
            for position, category in enumerate(SYNC_ORDER):
                remaining = [c.value for c in SYNC_ORDER[position:]]

                if cancel is not None and cancel.is_set():
                    report.cancelled = True
                    report.skipped.extend(remaining)
                    break
                if not self._still_current(client):
                    report.skipped.extend(remaining)
                    break

                definition = self.catalog.definitions.get(category)
                if definition is None:
                    continue

                names = self._fetch(invoker, client, definition, cancel)
                if names is None:
                    failure = invoker.last_failure
                    report.failed[category.value] = (
                        failure.kind.value if failure is not None else "unknown"
                    )
                    if failure is not None and failure.kind == FailureKind.CANCELLED:
                        report.cancelled = True
                        report.skipped.extend(remaining[1:])
                        break
                    continue

                # Cancellation seen after the fetch: do not apply a partial category
                if cancel is not None and cancel.is_set():
                    report.cancelled = True
                    report.skipped.extend(remaining)
                    break

                changes = self.catalog.apply_remote(category, names)
                report.synced[category.value] = len(changes)

        logger.info(
            "Sync finished: %d categories synced, %d failed, %d skipped%s",
            len(report.synced),
            len(report.failed),
            len(report.skipped),
            " (cancelled)" if report.cancelled else "",
        )
        self.last_report = report
        return report

    def _fetch(
        self,
        invoker: SafeInvoker,
        client: InferenceClient,
        definition: CategoryDefinition,
        cancel: Optional[threading.Event],
    ) -> Optional[List[str]]:
        """Base listing plus any variant listings, or None if the base failed."""
        base, *variants = definition.remote

        names = invoker.invoke(
            base.operation,
            lambda: client.get_node_option_names(
                base.node_type, base.param_name, required=base.required, cancel=cancel
            ),
        )
        if names is None:
            return None
        names = list(names)

        for listing in variants:
            extra = invoker.invoke(
                listing.operation,
                lambda: client.get_node_option_names(
                    listing.node_type, listing.param_name, required=listing.required, cancel=cancel
                ),
            )
            if extra is None:
                failure = invoker.last_failure
                if failure is not None and failure.kind == FailureKind.CANCELLED:
                    return None
                continue
            names.extend(extra)
        return names

    def _on_index_changed(self) -> None:
        logger.debug("Model index changed, reloading catalog")
        self.reset_local()
        if self.is_connected:
            try:
                self.sync_all()
            except NotConnected:
                logger.debug("Disconnected before re-sync after index change")

    # --- Streaming ---

    def streaming_endpoint(self) -> Tuple[str, Dict[str, str]]:
        """Websocket URL and the auth headers its handshake must carry."""
        client = self._require_client()
        return client.websocket_url(), client.websocket_headers()

    # --- Input images ---

    def upload_input_image(
        self,
        image: Union[str, Path, bytes],
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Upload an input image; return the name the backend stored it under."""
        client = self._require_client()

        if isinstance(image, (str, Path)):
            path = Path(image)
            data = path.read_bytes()
            suffix = path.suffix or ".png"
        else:
            data = bytes(image)
            suffix = ".png"

        name = upload_name(data, suffix)
        logger.debug("Uploading image as %s", name)
        return client.upload_image(data, name, cancel=cancel)

    def copy_image_to_input(self, image: Union[str, Path]) -> Optional[Path]:
        """Copy an image into a local package's input folder.

        Returns None when not connected. Raises when the backend has no local
        input folder.
        """
        with self._state_lock:
            if self._state != ConnectionState.CONNECTED:
                return None
            target = self._target

        input_dir = target.input_dir if target is not None else None
        if input_dir is None:
            raise InferenceClientError("Backend has no local input directory")

        destination_dir = input_dir / "Inference"
        destination_dir.mkdir(parents=True, exist_ok=True)
        source = Path(image)
        destination = destination_dir / source.name
        shutil.copyfile(source, destination)
        return destination


__all__ = [
    "BackendKind",
    "BackendTarget",
    "Connection",
    "ConnectionController",
    "ConnectionState",
    "SyncReport",
    "upload_name",
]
