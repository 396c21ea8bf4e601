import logging

logger = logging.getLogger(__name__)

COMPACT_COMMAND = "repairDatabase"


def compact_database(db):
    """Run the storage engine's repair command to release disk space."""
    logger.debug(f"Running {COMPACT_COMMAND} on {db.name}")
    return db.command(COMPACT_COMMAND)
