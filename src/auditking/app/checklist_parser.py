from __future__ import annotations

import re

from auditking.app.checklist_models import TemplateItem


_LINE_SPLIT_PATTERN = re.compile(r"\r?\n|•")
_QUESTION_SUFFIX_PATTERN = re.compile(r"\?\s*$")


def parse_checklist_text(raw: str | None) -> list[TemplateItem]:
    """Turn pasted checklist text into template questions.

    Lines (or bullet-separated fragments) ending in ``?`` become yes/no
    questions, everything else free text. Ids are ``q1``, ``q2``... in input
    order. Empty input yields an empty list.
    """
    if not raw:
        return []
    lines = [chunk.strip() for chunk in _LINE_SPLIT_PATTERN.split(str(raw))]
    lines = [line for line in lines if line]
    return [
        TemplateItem(
            item_id=f"q{index}",
            kind="yesno" if _QUESTION_SUFFIX_PATTERN.search(line) else "text",
            label=line,
        )
        for index, line in enumerate(lines, start=1)
    ]
