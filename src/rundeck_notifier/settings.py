from __future__ import annotations
import os

CONFIG_PATH = os.environ.get("RUNDECK_NOTIFIER_CONFIG", "rundeck.json")
DEFAULT_API_VERSION = int(os.environ.get("RUNDECK_API_VERSION", "18"))
POLL_INTERVAL = int(os.environ.get("RUNDECK_POLL_INTERVAL", "5"))
HTTP_TIMEOUT = int(os.environ.get("RUNDECK_HTTP_TIMEOUT", "30"))
