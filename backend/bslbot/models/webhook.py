"""
Whapi webhook payload parser

Whapi posts inbound events in this format:
{
  "messages": [
    {
      "id": "message_id",
      "from_me": false,
      "type": "text" | "image" | "link_preview" | ...,
      "chat_id": "573001112233@s.whatsapp.net",
      "from": "573001112233",
      "from_name": "Name",
      "text": {"body": "Hola"},
      "image": {"id": "media_id", "mime_type": "image/jpeg"}
    }
  ],
  "event": {"type": "messages", "event": "post"}
}
"""
from typing import Optional, Any, List
from pydantic import BaseModel, Field


class WhapiText(BaseModel):
    """Text body of a message"""
    body: Optional[str] = None


class WhapiMedia(BaseModel):
    """Media reference (image, document...)"""

    model_config = {"extra": "allow"}

    id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    link: Optional[str] = None


class WhapiMessage(BaseModel):
    """Single inbound message"""

    model_config = {"extra": "allow", "populate_by_name": True}

    id: Optional[str] = None
    from_me: bool = False
    type: str = "text"
    chat_id: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")
    from_name: Optional[str] = None
    timestamp: Optional[int] = None
    text: Optional[WhapiText] = None
    link_preview: Optional[WhapiText] = None
    image: Optional[WhapiMedia] = None

    @property
    def body(self) -> str:
        """Text of the message according to its type"""
        if self.type == "text" and self.text:
            return (self.text.body or "").strip()
        if self.type == "link_preview" and self.link_preview:
            return (self.link_preview.body or "").strip()
        return ""

    @property
    def user_id(self) -> str:
        """Phone id of the conversation, without the WhatsApp suffix"""
        return extract_phone_from_jid(self.chat_id or self.sender or "")

    @property
    def reply_to(self) -> str:
        """Destination used when answering this message"""
        if self.chat_id:
            return self.chat_id
        return f"{self.sender}@s.whatsapp.net" if self.sender else ""

    @property
    def is_text(self) -> bool:
        return self.type in ("text", "link_preview")

    @property
    def is_image(self) -> bool:
        return self.type == "image" and self.image is not None


class WebhookPayload(BaseModel):
    """Whapi webhook envelope"""

    model_config = {"extra": "allow"}

    messages: List[WhapiMessage] = Field(default_factory=list)
    event: Optional[Any] = None
    channel_id: Optional[str] = None

    @property
    def first_message(self) -> Optional[WhapiMessage]:
        """Only the first message of a batch is processed"""
        return self.messages[0] if self.messages else None


def parse_webhook(payload: dict) -> WebhookPayload:
    """Parse raw webhook payload into WebhookPayload model"""
    return WebhookPayload(**payload)


def extract_phone_from_jid(jid: str) -> str:
    """Extract phone number from WhatsApp JID"""
    # JID format: 573001112233@s.whatsapp.net
    return jid.split("@")[0].replace("+", "").replace("-", "").replace(" ", "")
