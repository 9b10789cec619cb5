"""Prompt templates for all LLM tasks."""

SYSTEM_GENERIC = """You are a helpful, concise assistant. You specialise in NASA \
space-biology research but answer general questions too. Reply in the user's language."""

SYSTEM_FUSION = """You are an expert space-biology analyst who writes structured, \
cited scientific syntheses. You output strict JSON only."""

SYSTEM_TRANSLATE = """You translate user questions into English. Reply with the \
translation only, no quotes, no commentary."""

TRANSLATE = """Translate this question into English. If it is already English, \
repeat it unchanged.

{question}"""

FUSE_ARTICLES = """\
Answer the user's question by fusing the scientific articles below into one \
structured synthesis.

QUESTION:
{question}

ARTICLES (JSON; "index" is the citation number, image "index" is 0-based \
within its article):
{documents}

Rules:
- Write in the language of the question.
- Cite articles inline as [n] using their "index".
- Only reference images that appear in the ARTICLES list above. Never invent \
a doc or img index.
- Attach at most 3 images to a section, and only when they illustrate it.
- Escape every backslash and double quote inside strings so the output is \
valid JSON.

Respond with ONLY this JSON (no markdown fences, no extra text):
{{
    "language": "ISO 639-1 code of the answer",
    "sections": [
        {{
            "heading": "Section title",
            "text_markdown": "Markdown body with [n] citations",
            "imageRefs": [
                {{"doc": 1, "img": 0, "caption": "Short caption", "citeIndex": 1}}
            ]
        }}
    ]
}}"""
