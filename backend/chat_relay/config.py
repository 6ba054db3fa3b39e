import os
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)


DEFAULT_REGIONS: Dict[str, str] = {
    "cn": "https://api.coze.cn",
    "com": "https://api.coze.com",
}
DEFAULT_REGION = "cn"
DEFAULT_FETCH_PATH = "/v3/chat"
DEFAULT_FETCH_PREFIXES: Tuple[str, ...] = ("/v3/",)
DEFAULT_FORWARDED_FIELDS: Tuple[str, ...] = ("conversation_id", "query", "meta", "stream", "user_id")


@dataclass(frozen=True)
class Settings:
    coze_api_key: Optional[str] = None
    coze_base_url: str = DEFAULT_REGIONS[DEFAULT_REGION]
    allowed_origins: List[str] = field(default_factory=list)
    shared_secret: Optional[str] = None
    fetch_default_path: str = DEFAULT_FETCH_PATH
    fetch_allowed_prefixes: Tuple[str, ...] = DEFAULT_FETCH_PREFIXES
    forwarded_fields: Tuple[str, ...] = DEFAULT_FORWARDED_FIELDS
    log_level: str = "INFO"


def load_settings() -> Settings:
    file_cfg = _load_file_config()
    fetch_cfg = file_cfg.get("fetch") or {}

    regions = dict(DEFAULT_REGIONS)
    regions.update(file_cfg.get("regions") or {})
    region = os.getenv("COZE_REGION") or file_cfg.get("default_region") or DEFAULT_REGION
    base_url = os.getenv("COZE_BASE_URL") or regions.get(region.strip().lower())
    if not base_url:
        logger.warning("Unknown COZE_REGION %r, falling back to %s", region, DEFAULT_REGION)
        base_url = regions[DEFAULT_REGION]

    prefixes_env = os.getenv("COZE_FETCH_ALLOWED_PREFIXES")
    if prefixes_env:
        prefixes = tuple(_split_csv(prefixes_env))
    else:
        prefixes = tuple(fetch_cfg.get("allowed_prefixes") or DEFAULT_FETCH_PREFIXES)

    return Settings(
        coze_api_key=os.getenv("COZE_API_KEY") or None,
        coze_base_url=base_url.rstrip("/"),
        allowed_origins=_split_csv(os.getenv("ALLOWED_ORIGINS", "")),
        shared_secret=os.getenv("APP_SHARED_SECRET") or None,
        fetch_default_path=os.getenv("COZE_FETCH_DEFAULT_PATH") or fetch_cfg.get("default_path") or DEFAULT_FETCH_PATH,
        fetch_allowed_prefixes=prefixes,
        forwarded_fields=tuple(fetch_cfg.get("forwarded_fields") or DEFAULT_FORWARDED_FIELDS),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_file_config() -> dict:
    # relay.yml sits in the backend root (parent of chat_relay/)
    backend_root = pathlib.Path(__file__).resolve().parents[1]
    config_path = backend_root / "relay.yml"
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable %s: %s", config_path, exc)
        return {}
    if not isinstance(data, dict):
        return {}
    return data
