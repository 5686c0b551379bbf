import re
from typing import Optional, Sequence

GREETINGS = ("hello", "hi", "hey", "greetings", "good morning", "good afternoon", "good evening")
GOODBYES = ("bye", "goodbye", "see you", "later")

GREETING_RESPONSE = "Hello there! 👋 I'm Vicovibe, your AI coding assistant. What shall we build today?"
HELP_RESPONSE = (
    "I'm here to help you build amazing projects! 🚀\n\n"
    "You can ask me to:\n"
    "• Write code in any language\n"
    "• Debug and fix errors\n"
    "• Explain concepts\n"
    "• Create project structures\n"
    "• And much more!\n\n"
    "What would you like to work on?"
)
THANKS_RESPONSE = "You're welcome! 😊 Happy to help. Let me know if you need anything else!"
GOODBYE_RESPONSE = "Goodbye! 👋 Come back anytime you want to build something awesome!"


def _phrase_pattern(phrases: Sequence[str]) -> str:
    return "|".join(re.escape(p) for p in phrases)


_GREETING_RE = re.compile(rf"^(?:{_phrase_pattern(GREETINGS)})\b")
_THANKS_RE = re.compile(r"\bthank")
_GOODBYE_RE = re.compile(rf"\b(?:{_phrase_pattern(GOODBYES)})\b")


class SimpleInteractionHandler:
    """
    Answers trivial conversational prompts without touching a model.

    Checked in order: greeting, short help request, thanks, goodbye.
    """

    def __init__(self, help_max_tokens: int = 5):
        self.help_max_tokens = help_max_tokens

    def try_handle(self, prompt: str) -> Optional[str]:
        text = prompt.strip().lower()
        if not text:
            return None

        if _GREETING_RE.search(text):
            return GREETING_RESPONSE

        if "help" in text and len(text.split()) < self.help_max_tokens:
            return HELP_RESPONSE

        if _THANKS_RE.search(text):
            return THANKS_RESPONSE

        if _GOODBYE_RE.search(text):
            return GOODBYE_RESPONSE

        return None
