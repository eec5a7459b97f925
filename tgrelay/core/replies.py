"""Canned reply texts."""

from __future__ import annotations

from tgrelay.models import Sender

COMMAND_LIST = """/start - Show the welcome message
/help - Show this help message
/info - Show your user information
/echo <text> - Repeat the text you send
/sendto <chat_id> <message> - Send a message to a specific chat
/broadcast <message> - Send a message to every known chat"""

HELP = f"""📚 Available commands:

{COMMAND_LIST}

💡 You can also just send me any text and I will answer!"""

ECHO_USAGE = "Please add the text to repeat after /echo.\nExample: /echo Hello World"
SENDTO_USAGE = "Usage: /sendto <chat_id> <message>\nExample: /sendto -1001234567890 Hello Group!"
SENDTO_BAD_ID = "Invalid chat id. The chat id must be a number."
BROADCAST_USAGE = "Usage: /broadcast <message>\nExample: /broadcast Maintenance starts in 10 minutes"
BROADCAST_NO_CHATS = "There are no known chats yet. Add the bot to a group or start a conversation first."
UNKNOWN_COMMAND = "Sorry, I don't understand that command. Send /help to see what I can do."
THANKS = "You're welcome! Glad I could help 😊"
FAREWELL = "Goodbye! See you next time 👋"
CALLBACK_ACK = "Processed!"

GREETING_PHRASES = frozenset({"hello", "hi", "hey"})
THANKS_PHRASES = frozenset({"thanks", "thank you"})
FAREWELL_PHRASES = frozenset({"bye", "goodbye"})


def welcome(sender: Sender) -> str:
    return f"""👋 Welcome, {sender.first_name}!

I am a Telegram relay bot.

Available commands:
{COMMAND_LIST}

You can also just send me a message and I will answer!"""


def info(sender: Sender, chat_type: str, chat_id: int) -> str:
    return f"""ℹ️ Your information:

👤 Name: {sender.full_name}
🆔 User ID: {sender.user_id}
📝 Username: @{sender.username}
💬 Chat type: {chat_type}
🔢 Chat ID: {chat_id}"""


def echo(text: str) -> str:
    return f"🔄 You said: {text}"


def greeting(sender: Sender) -> str:
    return f"Hello {sender.first_name}! Nice to meet you 😊"


def fallback(text: str) -> str:
    return (
        f"You sent: \"{text}\"\n\n"
        "I am a simple bot and still learning! Send /help to see what I can do."
    )


def text_reply(sender: Sender, text: str) -> str:
    """Pick the reply for a plain text message."""
    normalized = text.strip().lower()
    if normalized in GREETING_PHRASES:
        return greeting(sender)
    if normalized in THANKS_PHRASES:
        return THANKS
    if normalized in FAREWELL_PHRASES:
        return FAREWELL
    return fallback(text.strip())


def sendto_result(chat_id: int, error: str | None) -> str:
    if error is not None:
        return f"Sending failed: {error}"
    return f"✅ Message sent to chat {chat_id}"


def broadcast_summary(success_count: int, fail_count: int) -> str:
    return (
        "📢 Broadcast finished!\n"
        f"✅ Succeeded: {success_count} chats\n"
        f"❌ Failed: {fail_count} chats"
    )
