# candsync/config.py
from dotenv import load_dotenv
import os

load_dotenv()

# Remote endpoint (the URL itself is the only credential)
ENDPOINT_URL = os.getenv("CANDSYNC_ENDPOINT_URL")
NICKNAME = os.getenv("CANDSYNC_NICKNAME", "lightship")

# Runtime parameters
MATCH_THRESHOLD_M = float(os.getenv("CANDSYNC_MATCH_THRESHOLD_M", "10"))
BATCH_SIZE = 5
CONCURRENCY = 10
FETCH_TIMEOUT_S = 30
UPLOAD_TIMEOUT_S = 60
LOG_LEVEL = os.getenv("CANDSYNC_LOG_LEVEL", "INFO")

# Map projection / viewport
TILE_SIZE = 512
POLL_INTERVAL_S = 0.5
NEARBY_WINDOW_DEG = 0.001

# Storage keys
CANDIDATES_KEY = "candsync-candidates"
ENDPOINT_URL_KEY = "candsync-endpoint-url"

# File names
STORAGE_PATH = os.getenv("CANDSYNC_STORAGE_PATH", "candsync_storage.json")
NOMINATIONS_PATH = os.getenv("CANDSYNC_NOMINATIONS_PATH", "nominations.json")
