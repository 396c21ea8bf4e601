from config import COL_TXNS, SYSTEM_PREFIX


def is_purgeable_collection(name):
    """True unless the collection belongs to the txn log or the database engine."""
    if name == COL_TXNS:
        return False
    if name.startswith(COL_TXNS + "."):
        return False
    if name.startswith(SYSTEM_PREFIX):
        return False
    return True


def classify_collections(names):
    """Filter a catalog snapshot down to the purgeable collections, keeping its order."""
    return [name for name in names if is_purgeable_collection(name)]


def get_all_purgeable_collections(db):
    """Snapshot the collection catalog once and classify it."""
    return classify_collections(db.list_collection_names())
