from __future__ import annotations

import json
import logging
import os

logger = logging.getLogger(__name__)

KEY_BASE_URL = "base_url"
KEY_STREAM_PROXY = "stream_proxy"

DEFAULT_BASE_URL = "https://livetv.sx/enx/allupcomingsports/1/"
DEFAULT_STREAM_PROXY = "127.0.0.1:6878"

DEFAULTS = {
    KEY_BASE_URL: DEFAULT_BASE_URL,
    KEY_STREAM_PROXY: DEFAULT_STREAM_PROXY,
}

DEFAULT_PREFS_PATH = os.path.join(os.path.expanduser("~"), ".livetv", "prefs.json")


class Preferences:
    """Small JSON-file key-value store for user settings."""

    def __init__(self, path: str = DEFAULT_PREFS_PATH) -> None:
        self.path = path
        self._values: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)

    def get(self, key: str) -> str:
        return self._values.get(key) or DEFAULTS.get(key, "")

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._save()
        logger.info("Preference %s set to %s", key, value)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._values.clear()
        else:
            self._values.pop(key, None)
        self._save()

    @property
    def base_url(self) -> str:
        return self.get(KEY_BASE_URL)

    @property
    def stream_proxy(self) -> str:
        return self.get(KEY_STREAM_PROXY)
