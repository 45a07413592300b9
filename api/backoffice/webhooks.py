import logging
from typing import Iterable, Optional

import requests

from .config import DISCORD_WEBHOOK_URL, SLACK_WEBHOOK_URL, TEAMS_WEBHOOK_URL, WEBHOOK_TIMEOUT

logger = logging.getLogger(__name__)


def chatops_urls() -> list[str]:
    return [url for url in (SLACK_WEBHOOK_URL, TEAMS_WEBHOOK_URL) if url]


def notify_chatops(message: str, urls: Optional[Iterable[str]] = None) -> int:
    """Post ``{"text": message}`` to each configured endpoint; returns how many accepted it."""
    delivered = 0
    for url in chatops_urls() if urls is None else urls:
        try:
            resp = requests.post(url, json={"text": message}, timeout=WEBHOOK_TIMEOUT)
        except requests.RequestException:
            logger.warning("webhook post to %s failed", url, exc_info=True)
            continue
        if resp.status_code >= 400:
            logger.warning("webhook %s answered %s", url, resp.status_code)
            continue
        delivered += 1
    return delivered


def post_discord_embed(embed: dict, url: Optional[str] = None) -> bool:
    target = url or DISCORD_WEBHOOK_URL
    if not target:
        return False
    try:
        resp = requests.post(target, json={"embeds": [embed]}, timeout=WEBHOOK_TIMEOUT)
    except requests.RequestException:
        logger.exception("discord webhook failed")
        return False
    if resp.status_code >= 400:
        logger.warning("discord webhook answered %s: %s", resp.status_code, resp.text)
        return False
    return True
