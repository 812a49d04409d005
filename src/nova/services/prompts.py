"""Prompt assembly for build turns.

The file block grammar in SYSTEM_PROMPT must stay in sync with
``core.stream_parser``: the parser is the only consumer of what the model
writes back.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import unquote

from ..domain.build_models import Attachment, ProjectMessage

logger = logging.getLogger(__name__)

ATTACHMENT_CHAR_LIMIT = 12000

_TEXT_DATA_URL = re.compile(r"^data:[^;,]+;text,(.+)$", re.DOTALL)
_BASE64_DATA_URL = re.compile(r"^data:([^;,]+)(?:;[^;,]+)*;base64,(.+)$", re.DOTALL)
_TEXTUAL_MIME = ("text/", "application/json", "application/javascript", "application/xml", "image/svg+xml")

SYSTEM_PROMPT = """You are Nova, an AI assistant that helps users build and modify web applications.

RULE #1: OBEY THE USER
- Do EXACTLY what the user asks, nothing more and nothing less.
- If the user says "add a contact page", add ONLY a contact page. Do NOT rebuild the whole project.
- If the user says "fix the navbar", change ONLY the file that holds the navbar.
- Only build everything from scratch when the user asks for a new app.
- NEVER add features the user didn't request.

RESPONSE FORMAT (always):

One sentence describing what you are doing.

📋 Plan:
• Step 1: [specific thing you will do]
• Step 2: [specific thing you will do]

Then output each file using:

FILE: path/to/filename.ext
```lang
...complete file content...
```

FILE RULES:

1. SEPARATE FILES. Never put everything in one index.html.
   - index.html is ONLY the landing/home page
   - other HTML pages go in pages/ (pages/login.html, pages/dashboard.html)
   - JavaScript goes in js/ (js/app.js, js/api.js)
   - CSS goes in css/ (css/styles.css)

2. LINKING BETWEEN FILES:
   - From index.html to a page: href="pages/login.html"
   - From pages/ back to index: href="../index.html"
   - From pages/ to other pages: href="dashboard.html"
   - JS from pages/: <script src="../js/app.js"></script>
   - CSS from pages/: <link rel="stylesheet" href="../css/styles.css">

3. HTML FILES:
   - Include Tailwind CDN: <script src="https://cdn.tailwindcss.com"></script>
   - Dark theme: bg-gray-950, text-gray-100, accent violet-500

4. WHEN MODIFYING AN EXISTING PROJECT:
   - Output ONLY files that are NEW or CHANGED
   - Existing unchanged files are preserved automatically
   - Keep the same design, theme and style as the existing project

5. WHEN BUILDING A NEW PROJECT:
   - Output ALL files, index.html FIRST, then CSS, then pages, then JS

6. NEVER truncate files or use "..." placeholders. Always output the FULL file content."""

EXISTING_PROJECT_ADDENDUM = """THIS IS AN EXISTING PROJECT. DO NOT START OVER.

📂 Files that already exist (preserved automatically, do NOT recreate):
{file_list}

RULES FOR THIS REQUEST:
- The user wants to ADD TO or MODIFY this existing project.
- Output ONLY the files the user asked you to create or change.
- Do NOT re-output files that already exist unless the user asked to change them.
- Match the existing design, theme, colors and code style.
- If the user asks to "add missing pages", create ONLY the missing pages."""


def system_prompt(existing_paths: Iterable[str]) -> str:
    paths = sorted(existing_paths)
    if not paths:
        return SYSTEM_PROMPT
    file_list = "\n".join(f"- {p}" for p in paths)
    return f"{SYSTEM_PROMPT}\n\n{EXISTING_PROJECT_ADDENDUM.format(file_list=file_list)}"


def attachment_text(url: str) -> Optional[str]:
    """Decoded text of a ``data:`` URL, or None for images and other binary payloads."""
    m = _TEXT_DATA_URL.match(url or "")
    if m:
        return unquote(m.group(1))
    m = _BASE64_DATA_URL.match(url or "")
    if not m or not m.group(1).lower().startswith(_TEXTUAL_MIME):
        return None
    try:
        return base64.b64decode(m.group(2)).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def _attachment_block(attachments: Optional[Sequence[Attachment]]) -> str:
    parts: List[str] = []
    for att in attachments or []:
        text = attachment_text(att.url)
        if text is None:
            logger.info("Skipping attachment %s (%s): not text", att.name, att.type or "unknown type")
            continue
        if not text.strip():
            continue
        snippet = text if len(text) <= ATTACHMENT_CHAR_LIMIT else text[:ATTACHMENT_CHAR_LIMIT] + "\n\n[truncated]"
        parts.append(f"[Attached file: {att.name}]\n{snippet}")
    return "\n\n".join(parts)


def build_messages(
    existing_files: Dict[str, str],
    history: Sequence[ProjectMessage],
    user_message: str,
    attachments: Optional[Sequence[Attachment]] = None,
) -> List[Dict[str, str]]:
    """OpenAI-style message list: system prompt, prior turns, then the new request.

    Text attachments are inlined ahead of the request; only the plain request
    is stored in the message history.
    """
    messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt(existing_files.keys())}]
    for msg in history:
        if msg.role not in ("user", "assistant"):
            continue
        messages.append({"role": msg.role, "content": msg.content})
    block = _attachment_block(attachments)
    content = f"{block}\n\n{user_message}" if block else user_message
    messages.append({"role": "user", "content": content})
    return messages
