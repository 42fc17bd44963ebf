"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

_PACKAGE_DIR = Path(__file__).resolve().parent


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


HOST = env_str("INVOICE_HOST", "0.0.0.0")
PORT = env_int("INVOICE_PORT", 8080, minimum=1)
LOG_LEVEL = env_str("INVOICE_LOG_LEVEL", "INFO")

# One Chromium per render job, so keep the pool modest.
DEFAULT_MAX_CONCURRENT_RENDERS = max(2, min(8, os.cpu_count() or 2))
MAX_CONCURRENT_RENDERS = env_int(
    "INVOICE_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
MAX_INFLIGHT_RENDERS = env_int(
    "INVOICE_MAX_INFLIGHT_RENDERS",
    max(16, MAX_CONCURRENT_RENDERS * 4),
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("INVOICE_RENDER_QUEUE_TIMEOUT_MS", 60000, minimum=0)
RENDER_TIMEOUT_MS = env_int("INVOICE_RENDER_TIMEOUT_MS", 180000, minimum=1000)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 8 * 1024 * 1024, minimum=1024)
MAX_PAGES = env_int("INVOICE_MAX_PAGES", 50, minimum=1)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 512, minimum=1)

# Headless browser timeouts.
LAUNCH_TIMEOUT_MS = env_int("INVOICE_LAUNCH_TIMEOUT_MS", 30000, minimum=1000)
NAVIGATION_TIMEOUT_MS = env_int("INVOICE_NAVIGATION_TIMEOUT_MS", 30000, minimum=1000)
OPERATION_TIMEOUT_MS = env_int("INVOICE_OPERATION_TIMEOUT_MS", 30000, minimum=1000)
NAVIGATION_ATTEMPTS = env_int("INVOICE_NAVIGATION_ATTEMPTS", 3, minimum=1)

# Collaborators.
BOOKINGS_PATH = env_str("INVOICE_BOOKINGS_PATH")
CDN_USERS = env_str("INVOICE_CDN_USERS")
CDN_LICENSES = env_str("INVOICE_CDN_LICENSES")

TEMPLATE_DIR = Path(env_str("INVOICE_TEMPLATE_DIR", str(_PACKAGE_DIR / "templates")))
TEMPLATE_NAME = env_str("INVOICE_TEMPLATE_NAME", "invoice.html")
CURRENCY_SYMBOL = env_str("INVOICE_CURRENCY_SYMBOL", "DH")

# Assets are inlined as base64 into a data: URL; Chromium caps URLs near 2 MB.
MAX_ASSET_BYTES = env_int("INVOICE_MAX_ASSET_BYTES", 512 * 1024, minimum=1024)
