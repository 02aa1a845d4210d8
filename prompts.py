"""
prompts.py — Prompt templates for each kind of documentation call.

File and directory prompts feed the codebase index; usage-guide prompts
feed the dependency index.
"""

from __future__ import annotations
from typing import Optional


# ---------------------------------------------------------------------------
# Codebase
# ---------------------------------------------------------------------------

def file_prompt(*, content: str, max_chars: int = 30_000) -> str:
    if len(content) > max_chars:
        content = content[:max_chars] + "\n... [truncated]"

    return f"""This is the code of a file:
```
{content}
```

Please give me a summary of what this file does."""


def directory_prompt(*, summaries: list[str]) -> str:
    joined = "\n\n".join(summaries)
    return f"""This is a list of file summaries in a directory:

{joined}

Please give me a summary of all files in this directory."""


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def usage_guide_prompt(*, dependency: str, types: str, readme: Optional[str] = None) -> str:
    if readme is not None:
        return f"""Could you generate some usage examples from this README and typescript definitions of a dependency called "{dependency}"?

{readme}

```ts
{types}
```"""

    return f"""Could you generate some usage examples from these typescript definitions of a dependency called "{dependency}"?

```ts
{types}
```"""


def front_matter(*, path: str, kind: str, body: str) -> str:
    return f"""---
path: "{path}"
type: "{kind}"
---
{body}"""
