"""
Runtime configuration, read once from the environment.
"""
import os

DB_FILE = os.getenv("DB_FILE", "schedwatch.db")

# Content source
SOURCE_BASE_URL = os.getenv("SOURCE_BASE_URL", "https://www.sevsu.ru")
SCHEDULE_URL = os.getenv("SCHEDULE_URL", f"{SOURCE_BASE_URL}/univers/shedule/")
REQUEST_TIMEOUT_SECONDS = int(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

# Retrieved snapshots live under this directory, one folder per file node
DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "downloads")

# Telegram bot used for notifications
BOT_TOKEN = os.getenv("BOT_TOKEN", "")

# 0 disables the periodic pass; checks can still be triggered manually
CHECK_INTERVAL_MINUTES = int(os.getenv("CHECK_INTERVAL_MINUTES", "60"))
