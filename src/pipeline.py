"""
Repair pipeline for the mgo/txn transaction structures.

Stages run strictly in order, each one a barrier for the next:

    RepairSingleton -> ClassifyCollections -> PurgeOrphans
        -> FixMachineQueues -> PruneTransactionLog -> CompactStorage -> Done

The last three are optional. Any failure moves the pipeline to Failed and
nothing after the failing stage runs. Nothing is retried: every mutation is
idempotent, so a failed run is recovered by running again from the start.

Precondition: no controller machine agent may be running. This is checked
with the operator, not by the pipeline.
"""

import logging
import time
from enum import Enum

from config import (
    COL_TXNS, COL_TXNS_STASH, COL_MACHINES, MAX_HOST_PORTS_QUEUE, PRUNE_BATCH_SIZE
)
from compact_db import compact_database
from fix_machines import fix_machines_txn_queue
from known_txns import build_known_txn_index
from prune_txns import prune_txns
from purge_missing import purge_missing
from purgeable import get_all_purgeable_collections
from repair_host_ports import fix_api_host_ports

logger = logging.getLogger(__name__)


class Stage(Enum):
    REPAIR_SINGLETON = "RepairSingleton"
    CLASSIFY_COLLECTIONS = "ClassifyCollections"
    PURGE_ORPHANS = "PurgeOrphans"
    FIX_MACHINE_QUEUES = "FixMachineQueues"
    PRUNE_TRANSACTION_LOG = "PruneTransactionLog"
    COMPACT_STORAGE = "CompactStorage"
    DONE = "Done"
    FAILED = "Failed"


STAGE_ORDER = [
    Stage.REPAIR_SINGLETON,
    Stage.CLASSIFY_COLLECTIONS,
    Stage.PURGE_ORPHANS,
    Stage.FIX_MACHINE_QUEUES,
    Stage.PRUNE_TRANSACTION_LOG,
    Stage.COMPACT_STORAGE,
]


class StageError(Exception):
    """A pipeline stage failed; carries the stage and the underlying cause."""

    def __init__(self, stage, cause):
        super().__init__(f"{stage.value}: {cause}")
        self.stage = stage
        self.cause = cause


class PurgeOptions:
    """Which optional stages run, and the repair policy parameters."""

    def __init__(self, do_machines=True, do_prune=True, do_compact=True,
                 max_host_ports_queue=MAX_HOST_PORTS_QUEUE, prune_batch_size=PRUNE_BATCH_SIZE):
        self.do_machines = do_machines
        self.do_prune = do_prune
        self.do_compact = do_compact
        self.max_host_ports_queue = max_host_ports_queue
        self.prune_batch_size = prune_batch_size


class PurgePipeline:
    """Runs the repair stages against one database."""

    def __init__(self, db, options=None):
        self.db = db
        self.options = options or PurgeOptions()
        self.state = None
        self.executed = []
        self.results = {}
        self.collections = None
        self._known = None

        self.txns = db[COL_TXNS]
        self.stash = db[COL_TXNS_STASH]

    @property
    def known(self):
        """The known-transaction index, built on first use and reused for the whole run."""
        if self._known is None:
            self._known = build_known_txn_index(self.txns, self.stash)
        return self._known

    def selected_stages(self):
        skipped = set()
        if not self.options.do_machines:
            skipped.add(Stage.FIX_MACHINE_QUEUES)
        if not self.options.do_prune:
            skipped.add(Stage.PRUNE_TRANSACTION_LOG)
        if not self.options.do_compact:
            skipped.add(Stage.COMPACT_STORAGE)
        return [stage for stage in STAGE_ORDER if stage not in skipped]

    def run(self):
        """Run every selected stage in order. Raises StageError on the first failure."""
        handlers = {
            Stage.REPAIR_SINGLETON: self.repair_singleton,
            Stage.CLASSIFY_COLLECTIONS: self.classify_collections,
            Stage.PURGE_ORPHANS: self.purge_orphans,
            Stage.FIX_MACHINE_QUEUES: self.fix_machine_queues,
            Stage.PRUNE_TRANSACTION_LOG: self.prune_transaction_log,
            Stage.COMPACT_STORAGE: self.compact_storage,
        }
        for stage in self.selected_stages():
            self.state = stage
            logger.info(f"[{stage.value}] starting...")
            start_time = time.time()
            try:
                self.results[stage] = handlers[stage]()
            except Exception as e:
                self.state = Stage.FAILED
                raise StageError(stage, e) from e
            self.executed.append(stage)
            logger.info(f"[{stage.value}] ✓ completed in {time.time() - start_time:.2f}s")

        self.state = Stage.DONE
        return self.executed

    def repair_singleton(self):
        logger.info("Repairing runaway transactions for apiHostPorts document...")
        return fix_api_host_ports(self.db, self.known, self.options.max_host_ports_queue)

    def classify_collections(self):
        self.collections = get_all_purgeable_collections(self.db)
        logger.info(f"{len(self.collections)} purgeable collection(s)")
        return self.collections

    def purge_orphans(self):
        logger.info(f"Purging orphaned transactions for {len(self.collections)} juju collections...")
        return purge_missing(self.db, self.known, self.collections)

    def fix_machine_queues(self):
        logger.info("Removing references to completed transactions in machines collection...")
        return fix_machines_txn_queue(self.db[COL_MACHINES], self.txns)

    def prune_transaction_log(self):
        logger.info("Pruning unreferenced transactions...")
        return prune_txns(self.db, self.txns, self.collections, self.options.prune_batch_size)

    def compact_storage(self):
        logger.info("Compacting database to release disk space...")
        return compact_database(self.db)
