import logging

from pymongo import MongoClient
from config import (
    MONGO_HOSTNAME, MONGO_PORT, MONGO_USERNAME, MONGO_PASSWORD, MONGO_SSL,
    MONGO_AUTH_DATABASE, MONGO_DATABASE, MONGO_CONNECT_TIMEOUT_MS
)

logger = logging.getLogger(__name__)


def dial(hostname=MONGO_HOSTNAME, port=MONGO_PORT, username=MONGO_USERNAME,
         password=MONGO_PASSWORD, ssl=MONGO_SSL):
    """
    Connect to the controller's MongoDB server.

    Authenticates against the admin database when a username is given.
    TLS is used without certificate verification since controllers
    present a self-signed certificate. A ping is forced so that
    connectivity and authentication errors surface here, before any
    repair work starts.
    """
    kwargs = {
        "host": hostname,
        "port": int(port),
        "connectTimeoutMS": MONGO_CONNECT_TIMEOUT_MS,
        "serverSelectionTimeoutMS": MONGO_CONNECT_TIMEOUT_MS,
        "directConnection": True,
    }
    if username:
        kwargs["username"] = username
        kwargs["password"] = password
        kwargs["authSource"] = MONGO_AUTH_DATABASE
    if ssl:
        kwargs["tls"] = True
        kwargs["tlsAllowInvalidCertificates"] = True
        kwargs["tlsAllowInvalidHostnames"] = True

    logger.debug(f"Connecting to {hostname}:{port} (ssl={ssl}, user={username or '-'})")
    client = MongoClient(**kwargs)
    try:
        client.admin.command("ping")
    except Exception:
        client.close()
        raise
    return client


def get_db(client, name=MONGO_DATABASE):
    """Returns the juju database handle."""
    return client[name]
