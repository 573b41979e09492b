"""
Webhook routes for Whapi
"""
import logging
from fastapi import APIRouter, BackgroundTasks
from typing import Any

from ...models.webhook import WhapiMessage, parse_webhook
from ...conversation import conversation_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


async def process_message(message: WhapiMessage):
    """Run the dispatcher outside the request cycle"""
    result = await conversation_dispatcher.handle_message(message)
    logger.info(f"Message {message.id} from {message.user_id} processed: {result}")


@router.post("/webhook")
async def receive_webhook(payload: dict[str, Any], background_tasks: BackgroundTasks):
    """
    Receive webhook from Whapi.

    Only the first message of the batch is processed, in the background.
    Always answers 200 so Whapi does not retry.
    """
    try:
        webhook = parse_webhook(payload)
        message = webhook.first_message

        if message is None:
            logger.info("Webhook without messages, ignored")
            return {"success": True}

        logger.info(
            f"Webhook message: type={message.type}, from={message.sender}, "
            f"from_me={message.from_me}, text={message.body[:50]}"
        )

        background_tasks.add_task(process_message, message)
        return {"success": True, "received": True}

    except Exception as e:
        logger.exception(f"Webhook error: {e}")
        return {"success": True, "error": str(e)}
