import logging

from config import COL_TXNS, COL_CONTROLLERS, API_HOST_PORTS_KEY, FIELD_TXN_QUEUE, MAX_HOST_PORTS_QUEUE
from txn_utils import (
    OUTSTANDING_STATES, txn_id_from_token, fetch_txn_states, count_unparseable,
    pull_txn_tokens, removed_tokens
)

logger = logging.getLogger(__name__)


def truncate_to_outstanding(queue, states):
    """Keep tokens whose txn is still outstanding.

    Tokens that cannot be parsed, and tokens of transactions with no txn
    log record (known only through the stash), are kept as well.
    """
    kept = []
    for token in queue:
        txn_id = txn_id_from_token(token)
        if txn_id is None or txn_id not in states or states[txn_id] in OUTSTANDING_STATES:
            kept.append(token)
    return kept


def fix_api_host_ports(db, known, max_queue_length=MAX_HOST_PORTS_QUEUE):
    """
    Repair the runaway txn-queue of controllers/apiHostPorts.

    Tokens for unknown transactions are dropped. If the queue is still
    longer than max_queue_length it is truncated to the tokens of
    transactions that are still outstanding. Returns the number of tokens
    removed.
    """
    controllers = db[COL_CONTROLLERS]
    doc = controllers.find_one({"_id": API_HOST_PORTS_KEY}, {FIELD_TXN_QUEUE: 1})
    if doc is None:
        logger.info(f"No {COL_CONTROLLERS}/{API_HOST_PORTS_KEY} document; nothing to repair.")
        return 0

    queue = doc.get(FIELD_TXN_QUEUE) or []
    logger.info(f"{API_HOST_PORTS_KEY} txn-queue has {len(queue)} entries")
    if not queue:
        return 0
    unparseable = count_unparseable(queue)
    if unparseable:
        logger.warning(f"Ignoring {unparseable} unparseable token(s) in {API_HOST_PORTS_KEY} txn-queue")

    new_queue = [token for token in queue if known.knows_token(token)]
    if len(new_queue) > max_queue_length:
        logger.warning(
            f"{API_HOST_PORTS_KEY} txn-queue still has {len(new_queue)} entries "
            f"(limit {max_queue_length}); keeping outstanding transactions only"
        )
        ids = [t for t in map(txn_id_from_token, new_queue) if t is not None]
        states = fetch_txn_states(db[COL_TXNS], ids)
        new_queue = truncate_to_outstanding(new_queue, states)

    if new_queue == queue:
        return 0

    pull_txn_tokens(controllers, API_HOST_PORTS_KEY, removed_tokens(queue, new_queue))
    removed = len(queue) - len(new_queue)
    logger.info(f"Removed {removed} entries from {API_HOST_PORTS_KEY} txn-queue ({len(new_queue)} remain)")
    return removed
