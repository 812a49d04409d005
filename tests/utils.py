from __future__ import annotations

from typing import Dict, Optional
import uuid

from src.nova.domain.models import Project, ProjectCreate
from src.nova.infrastructure.repository import get_repo

HOMEPAGE_RESPONSE = (
    "Building a page.\n\n📋 Plan:\n• Step 1: Create homepage\n\n"
    "FILE: index.html\n```html\n<html><body>Hi</body></html>\n```\n"
)

MULTI_PAGE_RESPONSE = """Adding an about page and styles.

📋 Plan:
• Step 1: Create about page
• Step 2: Add styles

FILE: pages/about.html
```html
<html><head><title>About</title><link rel="stylesheet" href="../css/styles.css"></head><body>About</body></html>
```

FILE: css/styles.css
```css
body { color: #fff; }
```
"""


def make_project(files: Optional[Dict[str, str]] = None, name: Optional[str] = None) -> Project:
    """Create a project in the active repository with a unique name."""
    return get_repo().create(
        ProjectCreate(name=name or f"Test App {uuid.uuid4().hex[:8]}", description="test", files=files)
    )
