import os


API_TOKEN = os.getenv("API_TOKEN", "dev-token")
VIEWER_TOKEN = os.getenv("VIEWER_TOKEN")
ADMIN_USER_ID = os.getenv("ADMIN_USER_ID", "admin")
ADMIN_USER_NAME = os.getenv("ADMIN_USER_NAME", "Administrator")
ADMIN_USER_EMAIL = os.getenv("ADMIN_USER_EMAIL", "admin@localhost")

SYSTEM_NAME = os.getenv("SYSTEM_NAME", "cbos")
SYSTEM_VERSION = os.getenv("SYSTEM_VERSION", "1.0.0")
PROFILE_PATH = os.getenv("PROFILE_PATH")

TABLE_STORE = os.getenv("TABLE_STORE", "file").lower()
TABLE_DATA_DIR = os.getenv("TABLE_DATA_DIR", "data/tables")
POSTGREST_URL = os.getenv("POSTGREST_URL", "")
POSTGREST_API_KEY = os.getenv("POSTGREST_API_KEY", "")

SNAPSHOT_STORE = os.getenv("SNAPSHOT_STORE", "file").lower()
SNAPSHOT_DIR = os.getenv("SNAPSHOT_DIR", "data/snapshots")
LEDGER_PATH = os.getenv("LEDGER_PATH", "data/operations.log")

MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "http://minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "cbos-exports")
MINIO_SECURE = os.getenv("MINIO_SECURE", "false").lower() == "true"
