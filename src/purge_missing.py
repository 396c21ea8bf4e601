import logging
from collections import defaultdict

from config import COL_TXNS_STASH, FIELD_TXN_QUEUE
from txn_utils import count_unparseable, pull_txn_tokens, removed_tokens

logger = logging.getLogger(__name__)

QUEUED_DOCS_FILTER = {FIELD_TXN_QUEUE: {"$exists": True, "$ne": []}}
QUEUE_PROJECTION = {"_id": 1, FIELD_TXN_QUEUE: 1}


class PurgeStats:
    """Counters for a queue-purging pass, overall and per collection."""

    def __init__(self):
        self.scanned = 0
        self.updated = 0
        self.removed = 0
        self.by_collection = defaultdict(lambda: {"scanned": 0, "updated": 0, "removed": 0})

    def record(self, collection, removed):
        self.scanned += 1
        col = self.by_collection[collection]
        col["scanned"] += 1
        if removed:
            self.updated += 1
            self.removed += removed
            col["updated"] += 1
            col["removed"] += removed

    def __repr__(self):
        return f"PurgeStats(scanned={self.scanned}, updated={self.updated}, removed={self.removed})"


def purge_document_queue(queue, known):
    """Return the queue without tokens for unknown transactions, order preserved."""
    return [token for token in queue if known.knows_token(token)]


def purge_collection(collection, known, stats):
    """Purge orphaned tokens from every queued document of one collection."""
    with collection.find(QUEUED_DOCS_FILTER, QUEUE_PROJECTION) as cursor:
        for doc in cursor:
            queue = doc.get(FIELD_TXN_QUEUE) or []
            new_queue = purge_document_queue(queue, known)
            unparseable = count_unparseable(queue)
            if unparseable:
                logger.warning(
                    f"Ignoring {unparseable} unparseable token(s) in {collection.name}/{doc['_id']}"
                )
            removed = len(queue) - len(new_queue)
            if removed:
                logger.warning(
                    f"Purging {removed} missing transaction(s) from {collection.name}/{doc['_id']}"
                )
                pull_txn_tokens(collection, doc["_id"], removed_tokens(queue, new_queue))
            stats.record(collection.name, removed)


def purge_missing(db, known, collections, include_stash=True):
    """
    Remove txn-queue tokens that reference transactions absent from `known`.

    Collections are processed in the given order, one document at a time.
    The stash's own queues are purged last. Any failure propagates
    immediately; nothing already written is rolled back.
    """
    stats = PurgeStats()
    names = list(collections)
    if include_stash:
        names.append(COL_TXNS_STASH)

    for i, name in enumerate(names, 1):
        purge_collection(db[name], known, stats)
        col = stats.by_collection[name]
        logger.info(
            f"  [{i}/{len(names)}] {name}: scanned {col['scanned']}, "
            f"updated {col['updated']}, removed {col['removed']} token(s)"
        )

    logger.info(f"Purge complete: {stats}")
    return stats
