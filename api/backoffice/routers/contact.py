import logging

from fastapi import APIRouter, HTTPException, status

from .. import webhooks
from ..schemas import ContactMessage
from ..utils import clip_text, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
def contact(body: ContactMessage):
    if not webhooks.DISCORD_WEBHOOK_URL:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Discord webhook URL not configured")
    embed = {
        "title": "New Contact Message",
        "color": 0x0099FF,
        "fields": [
            {"name": "Name", "value": clip_text(body.name, 256), "inline": True},
            {"name": "Email", "value": clip_text(body.email, 256), "inline": True},
            {"name": "Message", "value": clip_text(body.message, 1024), "inline": False},
        ],
        "timestamp": utcnow().isoformat() + "Z",
    }
    if not webhooks.post_discord_embed(embed):
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Failed to send message")
    return {"message": "Message sent successfully"}
