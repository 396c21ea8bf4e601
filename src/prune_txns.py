"""
Prune completed, unreferenced transactions from the txn log.

Mirrors the juju txn library's PruneTxns: a transaction record can be
deleted once it is applied or aborted and no document's txn-queue still
references it.
"""

import logging

from config import COL_TXNS_STASH, FIELD_TXN_QUEUE, FIELD_TXN_STATE, PRUNE_BATCH_SIZE
from purge_missing import QUEUED_DOCS_FILTER
from txn_utils import COMPLETED_STATES, txn_id_from_token

logger = logging.getLogger(__name__)


def find_referenced_txn_ids(db, collections):
    """Collect every txn id referenced by a txn-queue in the given collections and the stash."""
    referenced = set()
    for name in list(collections) + [COL_TXNS_STASH]:
        with db[name].find(QUEUED_DOCS_FILTER, {FIELD_TXN_QUEUE: 1}) as cursor:
            for doc in cursor:
                for token in doc.get(FIELD_TXN_QUEUE) or []:
                    txn_id = txn_id_from_token(token)
                    if txn_id is not None:
                        referenced.add(txn_id)
    return referenced


def prune_txns(db, txns, collections, batch_size=PRUNE_BATCH_SIZE):
    """
    Delete applied/aborted transactions that nothing references.

    Returns the number of txn records removed.
    """
    referenced = find_referenced_txn_ids(db, collections)
    logger.info(f"{len(referenced)} transaction(s) still referenced by documents")

    completed = {"$in": sorted(COMPLETED_STATES)}
    removed = 0
    batch = []
    with txns.find({FIELD_TXN_STATE: completed}, {"_id": 1}) as cursor:
        for doc in cursor:
            if str(doc["_id"]) in referenced:
                continue
            batch.append(doc["_id"])
            if len(batch) >= batch_size:
                removed += _remove_batch(txns, batch)
                batch = []
    if batch:
        removed += _remove_batch(txns, batch)

    logger.info(f"Pruned {removed} transaction(s) from {txns.name}")
    return removed


def _remove_batch(txns, ids):
    # Re-check the state so a record is never removed unless it is still completed
    result = txns.delete_many({"_id": {"$in": ids}, FIELD_TXN_STATE: {"$in": sorted(COMPLETED_STATES)}})
    logger.debug(f"  removed batch of {result.deleted_count}")
    return result.deleted_count
