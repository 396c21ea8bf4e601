import logging

from config import FIELD_TXN_QUEUE
from purge_missing import PurgeStats, QUEUED_DOCS_FILTER, QUEUE_PROJECTION
from txn_utils import (
    TXN_STATE_APPLIED, txn_id_from_token, fetch_txn_states, pull_txn_tokens, removed_tokens
)

logger = logging.getLogger(__name__)


def remove_applied_tokens(queue, states):
    """Drop tokens whose transaction is applied; unknown and other states stay."""
    return [
        token for token in queue
        if states.get(txn_id_from_token(token)) != TXN_STATE_APPLIED
    ]


def fix_machines_txn_queue(machines, txns):
    """
    Remove references to completed transactions from machine documents.

    A transaction can be applied and still linger in a machine's queue.
    Only tokens whose txn record is in the applied state are removed;
    tokens of unknown transactions are left for the orphan purge.
    """
    stats = PurgeStats()
    with machines.find(QUEUED_DOCS_FILTER, QUEUE_PROJECTION) as cursor:
        for doc in cursor:
            queue = doc.get(FIELD_TXN_QUEUE) or []
            ids = [t for t in map(txn_id_from_token, queue) if t is not None]
            states = fetch_txn_states(txns, ids)
            new_queue = remove_applied_tokens(queue, states)
            removed = len(queue) - len(new_queue)
            if removed:
                logger.debug(f"Removing {removed} applied transaction(s) from {machines.name}/{doc['_id']}")
                pull_txn_tokens(machines, doc["_id"], removed_tokens(queue, new_queue))
            stats.record(machines.name, removed)

    logger.info(f"Machines fixed: {stats}")
    return stats
