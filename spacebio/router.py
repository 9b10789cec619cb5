"""Intent classification for incoming user messages."""

from __future__ import annotations

import logging
import re

from spacebio.models import Intent, IntentKind

logger = logging.getLogger(__name__)

# Substring matches, lowercased; English and French
SPACE_BIOLOGY_KEYWORDS = [
    "space biology", "biologie spatiale", "microgravity", "micro-gravity",
    "microgravité", "iss", "international space station", "station spatiale",
    "spatial biology", "spaceflight", "space flight", "vol spatial",
    "gravity biology", "zero g", "0g", "space bio", "gravité", "gravity",
    "biologie de l'espace", "biology of space", "space environment",
    "astronaut", "astronaute", "cosmic radiation", "radiation spatiale",
]

GREETING_PATTERNS = [
    re.compile(
        r"^\s*(hi|hello|hey|yo|hiya|greetings|good (morning|afternoon|evening)|"
        r"bonjour|bonsoir|salut|coucou)\b[\s\w]{0,20}[!.?\s]*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^\s*(thanks|thank you|thx|merci( beaucoup)?|cheers)\b[\s\w]{0,20}[!.?\s]*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^\s*(how are you|how's it going|ça va|ca va|comment ça va|comment vas-tu)"
        r"[\s\w]{0,20}[!.?\s]*$",
        re.IGNORECASE,
    ),
]

CAPABILITY_PATTERNS = [
    re.compile(
        r"\b(what can you do|what do you do|who are you|what are you|"
        r"how can you help|what can you help|your capabilities|help me understand what you)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"(que (peux|sais)[- ]tu faire|qui es[- ]tu|tu sers à quoi|"
        r"comment peux[- ]tu m'aider|quelles sont tes capacités)",
        re.IGNORECASE,
    ),
    re.compile(r"^\s*(help|aide)\s*[!?.]*\s*$", re.IGNORECASE),
]

GREETING_REPLY = (
    "Hello! I can help you explore NASA space-biology publications. "
    "Ask me about microgravity, spaceflight, radiation or life aboard the ISS."
)

CAPABILITY_REPLY = (
    "I'm an assistant for general questions, with a specialty in NASA "
    "space-biology research. Ask a question about a space-biology topic and "
    "I'll find matching publications, extract their content and figures, and "
    "write a cited synthesis."
)

DOMAIN_CAPABILITY_REPLY = (
    "For space-biology topics such as microgravity, spaceflight or the ISS, I "
    "search a curated index of NASA publications, read the most relevant "
    "articles and combine them into one answer with citations and figures "
    "from the original papers. When a synthesis isn't possible I show "
    "cleaned-up excerpts or the list of matching articles instead."
)


def is_space_biology_query(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in SPACE_BIOLOGY_KEYWORDS)


def _matches_any(patterns: list[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def classify(text: str) -> Intent:
    """First matching category wins: chitchat, capabilities, domain, generic."""
    text = (text or "").strip()
    if not text:
        return Intent(IntentKind.GENERIC)

    is_domain = is_space_biology_query(text)

    if _matches_any(GREETING_PATTERNS, text) and not is_domain:
        intent = Intent(IntentKind.CHITCHAT)
    elif _matches_any(CAPABILITY_PATTERNS, text):
        intent = Intent(IntentKind.CAPABILITIES, domain_aware=is_domain)
    elif is_domain:
        intent = Intent(IntentKind.DOMAIN)
    else:
        intent = Intent(IntentKind.GENERIC)

    logger.debug("Classified %r as %s", text[:80], intent.kind.value)
    return intent


def canned_reply(intent: Intent) -> str | None:
    """Fixed reply for intents that never reach the model."""
    if intent.kind == IntentKind.CHITCHAT:
        return GREETING_REPLY
    if intent.kind == IntentKind.CAPABILITIES:
        return DOMAIN_CAPABILITY_REPLY if intent.domain_aware else CAPABILITY_REPLY
    return None
