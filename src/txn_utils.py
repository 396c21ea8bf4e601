import re

from bson import ObjectId
from config import FIELD_TXN_QUEUE, FIELD_TXN_STATE, TXN_ID_HEX_LEN

# mgo/txn transaction states (txns.s)
TXN_STATE_PREPARING = 1
TXN_STATE_PREPARED = 2
TXN_STATE_ABORTING = 3
TXN_STATE_APPLYING = 4
TXN_STATE_ABORTED = 5
TXN_STATE_APPLIED = 6

TXN_STATE_NAMES = {
    TXN_STATE_PREPARING: "preparing",
    TXN_STATE_PREPARED: "prepared",
    TXN_STATE_ABORTING: "aborting",
    TXN_STATE_APPLYING: "applying",
    TXN_STATE_ABORTED: "aborted",
    TXN_STATE_APPLIED: "applied",
}

# Still needed in a document's queue
OUTSTANDING_STATES = frozenset([
    TXN_STATE_PREPARING, TXN_STATE_PREPARED, TXN_STATE_ABORTING, TXN_STATE_APPLYING
])
COMPLETED_STATES = frozenset([TXN_STATE_ABORTED, TXN_STATE_APPLIED])

_HEX_ID = re.compile(r'^[0-9a-fA-F]{%d}$' % TXN_ID_HEX_LEN)


class ConcurrentModificationError(Exception):
    """A queue update matched no document."""

    def __init__(self, collection, doc_id):
        super().__init__(
            f"{collection}/{doc_id}: document disappeared while its txn-queue was being repaired "
            f"(is a controller agent still running?)"
        )
        self.collection = collection
        self.doc_id = doc_id


def txn_id_from_token(token):
    """Extract the transaction id from a queue token ("<txn id hex>_<nonce>").

    Returns None for tokens that do not start with a valid ObjectId.
    """
    if not isinstance(token, str):
        return None
    prefix = token[:TXN_ID_HEX_LEN]
    if not _HEX_ID.match(prefix):
        return None
    return prefix.lower()


def txn_id_str(value):
    """Normalize a txns._id value to its hex string, or None for non-ObjectId ids."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, str) and _HEX_ID.match(value):
        return value.lower()
    return None


def state_name(state):
    return TXN_STATE_NAMES.get(state, f"unknown({state})")


def fetch_txn_states(txns, txn_ids):
    """Look up the state of each of the given transaction ids.

    Returns a dict of txn id hex -> state. Ids missing from the log are
    absent from the result.
    """
    ids = [ObjectId(t) for t in set(txn_ids)]
    if not ids:
        return {}
    states = {}
    with txns.find({"_id": {"$in": ids}}, {FIELD_TXN_STATE: 1}) as cursor:
        for doc in cursor:
            states[str(doc["_id"])] = doc.get(FIELD_TXN_STATE)
    return states


def pull_txn_tokens(collection, doc_id, tokens):
    """Remove the given tokens from a document's txn-queue.

    The update is matched on the document id alone and sends only the
    tokens being removed, so its size does not grow with the queue. Other
    fields are left untouched and an emptied queue stays as []. Removing
    tokens that are already gone is a no-op. Raises
    ConcurrentModificationError if the document no longer exists.
    """
    result = collection.update_one(
        {"_id": doc_id},
        {"$pullAll": {FIELD_TXN_QUEUE: list(dict.fromkeys(tokens))}},
    )
    if result.matched_count == 0:
        raise ConcurrentModificationError(collection.name, doc_id)
    return result


def removed_tokens(queue, new_queue):
    """Tokens present in queue but not in new_queue, in queue order, without repeats."""
    kept = set(new_queue)
    return list(dict.fromkeys(t for t in queue if t not in kept))


def count_unparseable(queue):
    return sum(1 for token in queue if txn_id_from_token(token) is None)
