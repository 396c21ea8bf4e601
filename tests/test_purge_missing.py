"""
Unit tests for the orphaned reference purge (purge_missing.py)
"""

import logging

import pytest
from pymongo.errors import OperationFailure

from fakes import T1, T2, T3, T4, token
from known_txns import KnownTxnIndex
from purge_missing import purge_document_queue, purge_missing
from txn_utils import ConcurrentModificationError, pull_txn_tokens


def test_purge_document_queue(known):
    queue = [token(T1), token(T2), token(T3)]
    assert purge_document_queue(queue, known) == [token(T1), token(T3)]


def test_removes_orphans_and_keeps_other_fields(db, known):
    units = db.add("units", [
        {"_id": "mysql/0", "life": 0, "txn-queue": [token(T1), token(T2), token(T3)]},
    ])

    stats = purge_missing(db, known, ["units"], include_stash=False)

    doc = units.get("mysql/0")
    assert doc["txn-queue"] == [token(T1), token(T3)]
    assert doc["life"] == 0
    assert stats.updated == 1
    assert stats.removed == 1


def test_clean_document_is_not_written(db, known):
    units = db.add("units", [{"_id": "mysql/0", "txn-queue": [token(T1)]}])

    stats = purge_missing(db, known, ["units"], include_stash=False)

    assert units.updates == []
    assert stats.scanned == 1
    assert stats.updated == 0


def test_emptied_queue_is_kept(db, known):
    machines = db.add("machines", [{"_id": "0", "txn-queue": [token(T2), token(T4)]}])

    purge_missing(db, known, ["machines"], include_stash=False)

    assert machines.get("0")["txn-queue"] == []


def test_every_remaining_entry_is_known(db, known):
    db.add("units", [
        {"_id": "a/0", "txn-queue": [token(T2), token(T1, "01")]},
        {"_id": "a/1", "txn-queue": [token(T4), token(T3), token(T2, "02")]},
        {"_id": "a/2"},
    ])
    db.add("settings", [{"_id": "s", "txn-queue": [token(T3), token(T4)]}])

    purge_missing(db, known, ["units", "settings"], include_stash=False)

    for name in ("units", "settings"):
        for doc in db[name].docs:
            for t in doc.get("txn-queue", []):
                assert known.knows_token(t)


def test_second_run_changes_nothing(db, known):
    units = db.add("units", [
        {"_id": "a/0", "txn-queue": [token(T2), token(T1)]},
        {"_id": "a/1", "txn-queue": [token(T4)]},
    ])
    purge_missing(db, known, ["units"], include_stash=False)
    writes = len(units.updates)

    stats = purge_missing(db, known, ["units"], include_stash=False)

    assert len(units.updates) == writes
    assert stats.updated == 0


def test_unparseable_tokens_are_left_alone(db, known):
    units = db.add("units", [{"_id": "a/0", "txn-queue": ["garbage", token(T2)]}])
    purge_missing(db, known, ["units"], include_stash=False)
    assert units.get("a/0")["txn-queue"] == ["garbage"]


def test_stash_queues_are_purged(db, known):
    key = {"c": "units", "id": "a/9"}
    stash = db.add("txns.stash", [{"_id": key, "txn-queue": [token(T1), token(T2)]}])

    stats = purge_missing(db, known, [])

    assert stash.docs[0]["txn-queue"] == [token(T1)]
    assert stats.by_collection["txns.stash"]["removed"] == 1


def test_write_failure_aborts(db, known):
    units = db.add("units", [{"_id": "a/0", "txn-queue": [token(T2)]}])
    settings = db.add("settings", [{"_id": "s", "txn-queue": [token(T2)]}])
    units.fail_updates = True

    with pytest.raises(OperationFailure):
        purge_missing(db, known, ["units", "settings"], include_stash=False)

    assert settings.updates == []
    assert units.open_cursors == []


def test_update_sends_only_removed_tokens(db):
    # A large queue must not be echoed back in the update command
    big_queue = [token(T1, f"{n:08x}") for n in range(5000)] + [token(T2)]
    units = db.add("units", [{"_id": "a/0", "txn-queue": big_queue}])
    known = KnownTxnIndex([str(T1)])

    purge_missing(db, known, ["units"], include_stash=False)

    query, update = units.updates[0]
    assert query == {"_id": "a/0"}
    assert update == {"$pullAll": {"txn-queue": [token(T2)]}}
    assert units.get("a/0")["txn-queue"] == big_queue[:-1]


def test_duplicate_orphans_pulled_once(db, known):
    units = db.add("units", [{"_id": "a/0", "txn-queue": [token(T2), token(T1), token(T2)]}])

    stats = purge_missing(db, known, ["units"], include_stash=False)

    assert units.updates[0][1] == {"$pullAll": {"txn-queue": [token(T2)]}}
    assert units.get("a/0")["txn-queue"] == [token(T1)]
    assert stats.removed == 2


def test_unparseable_tokens_logged_once_per_document(db, known, caplog):
    db.add("units", [{"_id": "a/0", "txn-queue": ["bad1", "bad2", "bad3", token(T1)]}])

    with caplog.at_level(logging.WARNING, logger="purge_missing"):
        purge_missing(db, known, ["units"], include_stash=False)

    messages = [r.getMessage() for r in caplog.records if "unparseable" in r.getMessage()]
    assert messages == ["Ignoring 3 unparseable token(s) in units/a/0"]


def test_pull_from_missing_document_raises(db):
    units = db.add("units")
    with pytest.raises(ConcurrentModificationError):
        pull_txn_tokens(units, "a/0", [token(T2)])


def test_pull_already_removed_token_is_noop(db):
    units = db.add("units", [{"_id": "a/0", "txn-queue": [token(T1)]}])
    result = pull_txn_tokens(units, "a/0", [token(T2)])
    assert result.modified_count == 0
    assert units.get("a/0")["txn-queue"] == [token(T1)]
