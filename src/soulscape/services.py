"""Process-wide service container.

All clients (chain, explorer, entity store) are constructed once from
configuration and handed to the components that need them. The FastAPI app
and the CLI both go through ``get_services``; tests install fakes with
``set_services``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from soulscape.canvas.sync import EventSyncer
from soulscape.canvas.wall import CanvasReconciler
from soulscape.chain.client import ChainClient, Web3ChainClient
from soulscape.config import SoulscapeConfig, get_config
from soulscape.engine.batch import BatchEvolutionRunner
from soulscape.engine.evolution import EvolutionOrchestrator
from soulscape.ingest.explorer import ExplorerClient
from soulscape.logging_config import register_secret
from soulscape.store.entity_store import EntityStore, HttpEntityStore, InMemoryEntityStore
from soulscape.store.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Wired components sharing one set of clients."""

    config: SoulscapeConfig
    chain: ChainClient
    explorer: ExplorerClient
    entity_store: EntityStore
    snapshots: SnapshotStore
    orchestrator: EvolutionOrchestrator
    batch: BatchEvolutionRunner
    syncer: EventSyncer
    reconciler: CanvasReconciler


def build_entity_store(config: SoulscapeConfig) -> EntityStore:
    """Entity store selected by ``STORE_URL``."""
    if config.uses_memory_store:
        logger.warning("Using in-process entity store; data is lost on restart")
        return InMemoryEntityStore()
    return HttpEntityStore(
        config.store_url,
        private_key=config.get_store_key(),
        timeout=config.request_timeout,
        max_retries=config.read_max_retries,
        retry_wait=config.read_retry_wait,
    )


def wire_services(
    config: SoulscapeConfig,
    chain: ChainClient,
    explorer: ExplorerClient,
    entity_store: EntityStore,
) -> Services:
    """Assemble components around already-built clients."""
    snapshots = SnapshotStore(
        entity_store, snapshot_ttl=config.snapshot_ttl, stroke_ttl=config.stroke_ttl
    )
    orchestrator = EvolutionOrchestrator(chain, explorer, snapshots)
    return Services(
        config=config,
        chain=chain,
        explorer=explorer,
        entity_store=entity_store,
        snapshots=snapshots,
        orchestrator=orchestrator,
        batch=BatchEvolutionRunner(chain, orchestrator),
        syncer=EventSyncer(chain, snapshots, block_window=config.sync_block_window),
        reconciler=CanvasReconciler(
            chain,
            snapshots,
            fallback_block_window=config.wall_fallback_block_window,
            default_limit=config.wall_default_limit,
        ),
    )


def build_services(config: SoulscapeConfig) -> Services:
    """Construct every client from ``config`` and wire the components."""
    for secret in (config.get_evolution_key(), config.get_store_key(), config.get_painter_key()):
        register_secret(secret)
    chain = Web3ChainClient(
        rpc_url=config.chain_rpc_url,
        chain_id=config.chain_id,
        soul_address=config.soul_contract,
        graffiti_address=config.graffiti_contract,
        evolution_key=config.get_evolution_key(),
        request_timeout=config.request_timeout,
        receipt_timeout=config.receipt_timeout,
        max_retries=config.read_max_retries,
        retry_wait=config.read_retry_wait,
    )
    explorer = ExplorerClient(
        config.explorer_base_url,
        timeout=config.request_timeout,
        max_retries=config.read_max_retries,
        retry_wait=config.read_retry_wait,
    )
    services = wire_services(config, chain, explorer, build_entity_store(config))
    logger.info("Services ready: %s", config)
    return services


_services: Services | None = None
_services_lock = threading.Lock()


def get_services() -> Services:
    """Get or lazily build the process-wide services."""
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(get_config())
        return _services


def set_services(services: Services | None) -> None:
    """Install (or clear, with None) the process-wide services."""
    global _services
    with _services_lock:
        _services = services
