import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from gateway.config import Settings
from gateway.models.peer import Peer
from gateway.services import keys
from gateway.services.audit import audit
from gateway.services.errors import DeviceError, NotFoundError
from gateway.services.registry import PeerRegistry
from gateway.services.wireguard import DeviceGateway

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware(dt: datetime) -> datetime:
    """Normalize naive datetimes to UTC-aware."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class Sweeper:
    """Periodically evicts peers that never connected or stopped handshaking.

    Eviction decisions are made on a registry snapshot; ``PeerRegistry.delete``
    decides who actually gets to remove a peer, so a concurrent DELETE request
    and a sweep never both tear the same peer down.
    """

    def __init__(
        self,
        registry: PeerRegistry,
        device: DeviceGateway,
        interval: timedelta = timedelta(minutes=1),
        never_connected_ttl: timedelta = timedelta(minutes=10),
        stale_handshake_ttl: timedelta = timedelta(hours=24),
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.registry = registry
        self.device = device
        self.interval = interval
        self.never_connected_ttl = never_connected_ttl
        self.stale_handshake_ttl = stale_handshake_ttl
        self._now = now
        self._task: asyncio.Task | None = None
        self._stop: asyncio.Event | None = None

    @classmethod
    def from_settings(cls, settings: Settings, registry: PeerRegistry, device: DeviceGateway) -> "Sweeper":
        return cls(
            registry,
            device,
            interval=settings.gc_interval(),
            never_connected_ttl=settings.never_connected_ttl(),
            stale_handshake_ttl=settings.stale_handshake_ttl(),
        )

    def _fetch_handshakes(self) -> dict[str, datetime | None]:
        try:
            return self.device.handshakes()
        except DeviceError as e:
            logger.warning("gc: handshakes unavailable, judging peers by creation time: %s", e)
            return {}

    def _refresh_handshake(self, peer: Peer, seen: datetime) -> None:
        try:
            stored = self.registry.update_handshake(peer.id, seen)
        except NotFoundError:
            logger.debug("gc: peer %s deleted before handshake refresh", peer.id)
            return
        peer.last_handshake_at = stored.last_handshake_at

    def _expired(self, peer: Peer, now: datetime) -> bool:
        if not peer.connected:
            ttl = self.never_connected_ttl
            return ttl > timedelta(0) and now - _ensure_aware(peer.created_at) > ttl
        ttl = self.stale_handshake_ttl
        return ttl > timedelta(0) and now - _ensure_aware(peer.last_handshake_at) > ttl

    def _evict(self, peer: Peer) -> bool:
        try:
            removed = self.registry.delete(peer.id)
        except NotFoundError:
            return False

        try:
            keys.parse_key(removed.public_key)
        except keys.InvalidKeyError as e:
            logger.error("gc: parse public key for %s: %s", removed.id, e)
            return False

        try:
            self.device.remove_peer(removed.public_key)
        except DeviceError as e:
            logger.error("gc: remove peer %s: %s", removed.id, e)
            return False

        reason = "stale handshake" if removed.connected else "never connected"
        audit("peer_evicted", peer_id=removed.id, detail=reason)
        logger.info("gc: removed peer %s due to inactivity (%s)", removed.id, reason)
        return True

    def run_once(self) -> list[str]:
        """One reclamation pass. Returns the ids of the peers that were evicted."""
        handshakes = self._fetch_handshakes()
        snapshot = self.registry.list()
        now = self._now()

        evicted: list[str] = []
        for peer in snapshot:
            seen = handshakes.get(peer.public_key)
            if seen is not None and _ensure_aware(seen) > _EPOCH:
                self._refresh_handshake(peer, _ensure_aware(seen))

            if self._expired(peer, now) and self._evict(peer):
                evicted.append(peer.id)

        if evicted:
            logger.info("gc: evicted %d of %d peer(s)", len(evicted), len(snapshot))
        return evicted

    async def _sweep_loop(self, stop: asyncio.Event) -> None:
        interval = self.interval.total_seconds()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            else:
                break
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("gc: sweep pass failed")

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        # asyncio.Event binds to the loop that first waits on it
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._sweep_loop(self._stop))
        logger.info("gc: sweeping every %ss", self.interval.total_seconds())

    async def stop(self) -> None:
        if self._task:
            self._stop.set()
            await self._task
            self._task = None
            self._stop = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
