"""HTML rewriting for previews served from a root other than the document's own.

A single ``<base>`` element makes every relative ``href``/``src`` resolve
against whichever root is serving the document (live project preview or a
published slug), so nothing else in the document needs rewriting.
"""

from __future__ import annotations

import html as html_lib
import re

_HEAD_OPEN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_BODY_OPEN = re.compile(r"<body\b", re.IGNORECASE)
_BASE_TAG = re.compile(r"<base\b[^>]*>", re.IGNORECASE)
_HREF_ATTR = re.compile(r"""\bhref\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)


def base_tag(serving_root: str) -> str:
    return f'<base href="{html_lib.escape(serving_root, quote=True)}">'


def inject_base(html: str, serving_root: str) -> str:
    """Point relative links at ``serving_root``.

    An existing ``<base>`` element has its href rewritten; otherwise a new one
    becomes the first child of ``<head>``, or is prepended when there is no head.
    """
    tag = base_tag(serving_root)
    head = _HEAD_OPEN.search(html)
    start = head.end() if head else 0
    end_mark = _HEAD_CLOSE.search(html, start) or _BODY_OPEN.search(html, start)
    end = end_mark.start() if end_mark else len(html)
    # Only a <base> in the head counts; body scripts may mention one
    existing = _BASE_TAG.search(html, start, end)
    if existing:
        return html[: existing.start()] + _rewrite_base(existing.group(0), serving_root) + html[existing.end():]
    if head:
        return f"{html[: head.end()]}\n  {tag}{html[head.end():]}"
    return f"{tag}\n{html}"


def document_base(serving_root: str, path: str) -> str:
    """Base href for the document stored at ``path`` under ``serving_root``.

    Pages in sub-folders link with ``../`` (``pages/about.html`` ->
    ``../css/styles.css``), so the base is the document's own folder.
    """
    root = serving_root if serving_root.endswith("/") else serving_root + "/"
    folder, _, _name = path.rpartition("/")
    return f"{root}{folder}/" if folder else root


def _rewrite_base(element: str, serving_root: str) -> str:
    href = f'href="{html_lib.escape(serving_root, quote=True)}"'
    if _HREF_ATTR.search(element):
        return _HREF_ATTR.sub(lambda _m: href, element, count=1)
    closing = "/>" if element.endswith("/>") else ">"
    return f"{element[: -len(closing)].rstrip()} {href}{closing}"


EMPTY_PREVIEW_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>Nova Preview</title>
  <script src="https://cdn.tailwindcss.com"></script>
</head>
<body class="min-h-screen bg-gray-950 flex items-center justify-center">
  <div class="text-center px-6">
    <h1 class="text-white text-xl font-semibold mb-3">Nova</h1>
    <p class="text-gray-400 text-sm max-w-sm leading-relaxed">
      Describe the app you want to build in the chat panel and the AI will generate it here in real time.
    </p>
    <div class="mt-6 flex items-center justify-center gap-2 text-gray-600 text-xs">
      <div class="w-1.5 h-1.5 rounded-full bg-violet-500 animate-pulse"></div>
      Waiting for your first message
    </div>
  </div>
</body>
</html>"""


DEPLOYMENT_NOT_FOUND_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>Not Found - Nova</title>
  <script src="https://cdn.tailwindcss.com"></script>
</head>
<body class="min-h-screen bg-gray-950 flex items-center justify-center">
  <div class="text-center px-6">
    <p class="text-gray-400 text-lg font-medium mb-2">Deployment not found</p>
    <p class="text-gray-600 text-sm">This deployment may have been removed or the link is incorrect.</p>
  </div>
</body>
</html>"""
