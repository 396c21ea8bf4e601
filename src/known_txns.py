import logging

from txn_utils import txn_id_from_token, txn_id_str

logger = logging.getLogger(__name__)


class KnownTxnIndex:
    """
    Immutable set of the transaction ids present in the txn log or its stash.

    Built once per run and shared by every stage that decides whether a
    queue token is orphaned.
    """

    __slots__ = ("_ids",)

    def __init__(self, txn_ids=()):
        object.__setattr__(self, "_ids", frozenset(txn_ids))

    def __setattr__(self, name, value):
        raise AttributeError("KnownTxnIndex is immutable")

    def __contains__(self, txn_id):
        return txn_id in self._ids

    def __len__(self):
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def knows(self, txn_id):
        return txn_id in self._ids

    def knows_token(self, token):
        """True if the token references a known txn.

        Tokens that cannot be parsed are reported as known: they cannot be
        proven orphaned, so they must never be removed.
        """
        txn_id = txn_id_from_token(token)
        if txn_id is None:
            return True
        return txn_id in self._ids


def _scan_ids(collection):
    ids = set()
    with collection.find({}, {"_id": 1}) as cursor:
        for doc in cursor:
            txn_id = txn_id_str(doc["_id"])
            if txn_id is not None:
                ids.add(txn_id)
    return ids


def build_known_txn_index(txns, stash):
    """
    Build the KnownTxnIndex from a full scan of the txn log and the stash.

    Read errors propagate; a partially scanned index is never returned.
    """
    log_ids = _scan_ids(txns)
    stash_ids = _scan_ids(stash)
    logger.info(f"Known transactions: {len(log_ids)} in {txns.name}, {len(stash_ids)} in {stash.name}")
    return KnownTxnIndex(log_ids | stash_ids)
