"""Prompts and fixed bot replies for LINE conversations."""

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly and helpful assistant chatting with users on LINE. "
    "Answer clearly and concisely, in the language the user writes in. "
    "Keep answers short enough to read comfortably on a phone, use plain text "
    "rather than Markdown, and ask a clarifying question when a request is ambiguous."
)

# Sent instead of any backend error detail
ERROR_REPLY = (
    "Sorry, I'm having trouble processing your request right now. "
    "Please try again later."
)

HELP_REPLY = (
    "Available commands:\n"
    "/help - Show this message\n"
    "/about - About this bot\n"
    "/echo <text> - Echo your message\n"
    "/clear - Clear conversation history"
)

ABOUT_REPLY = "LINE Bot powered by Python + FastAPI\nAnswers come from a local LM Studio model"

ECHO_USAGE_REPLY = "Usage: /echo <text>"

CLEAR_REPLY = "Conversation history cleared."

UNKNOWN_COMMAND_REPLY = "Unknown command: {command}\nType /help for available commands"

WELCOME_REPLY = (
    "Welcome! Thank you for adding me as a friend!\n\n"
    "Type /help to see available commands."
)
