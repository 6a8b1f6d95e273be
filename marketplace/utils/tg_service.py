# marketplace/utils/tg_service.py
import html
import logging
from typing import Optional, Union

from telegram import Bot, Message
from telegram.constants import ParseMode
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


def format_alert(title: str, message: str, action_url: Optional[str] = None) -> str:
    lines = [f"<b>{html.escape(title)}</b>", html.escape(message)]
    if action_url:
        lines.append(html.escape(action_url))
    return "\n".join(lines)


class TelegramService:
    """Pushes operator alerts (new sales, group purchases) to a Telegram chat"""

    def __init__(self, bot_token: str):
        self.bot = Bot(token=bot_token)

    async def send_alert(
        self,
        chat_id: Union[int, str],
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Send a sale alert to the operators chat.

        Returns the sent Message, or None when Telegram rejected it.
        """
        try:
            sent = await self.bot.send_message(
                chat_id=chat_id,
                text=format_alert(title, message, action_url),
                parse_mode=ParseMode.HTML,
                disable_web_page_preview=True,
            )
            logger.info(f"Alert '{title}' sent to chat {chat_id}")
            return sent
        except TelegramError as e:
            logger.error(f"Failed to send alert to chat {chat_id}: {e}")
            return None
