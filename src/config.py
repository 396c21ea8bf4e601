import os
from dotenv import load_dotenv

# Load .env file from project root
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env"))

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# MongoDB Configuration
MONGO_HOSTNAME = os.getenv("MGOPURGE_HOSTNAME", "localhost")
MONGO_PORT = int(os.getenv("MGOPURGE_PORT", "37017"))
MONGO_USERNAME = os.getenv("MGOPURGE_USERNAME", "admin")
MONGO_PASSWORD = os.getenv("MGOPURGE_PASSWORD", "")
MONGO_SSL = os.getenv("MGOPURGE_SSL", "true").lower() == "true"
MONGO_AUTH_DATABASE = "admin"
MONGO_DATABASE = os.getenv("MGOPURGE_DATABASE", "juju")
MONGO_CONNECT_TIMEOUT_MS = int(os.getenv("MGOPURGE_CONNECT_TIMEOUT_MS", "10000"))

# Repair policy
MAX_HOST_PORTS_QUEUE = int(os.getenv("MGOPURGE_MAX_HOST_PORTS_QUEUE", "1000"))
PRUNE_BATCH_SIZE = int(os.getenv("MGOPURGE_PRUNE_BATCH_SIZE", "1000"))

# Collection names
COL_TXNS = "txns"
COL_TXNS_STASH = COL_TXNS + ".stash"
COL_MACHINES = "machines"
COL_CONTROLLERS = "controllers"
SYSTEM_PREFIX = "system."

# Well-known documents
API_HOST_PORTS_KEY = "apiHostPorts"  # controllers/apiHostPorts

# Transaction wire format (mgo/txn)
FIELD_TXN_QUEUE = "txn-queue"
FIELD_TXN_STATE = "s"
TXN_ID_HEX_LEN = 24
