"""
Workflow Comparison
===================

Side-by-side diff of two stored workflows: prompts are paired by polarity and
compared word by word, metadata is compared key by key.
"""

from difflib import SequenceMatcher
from itertools import zip_longest
from typing import Any, Dict, List, Optional

PROMPT_TYPE_ORDER = ('positive', 'negative', 'unknown')
COMPARED_METADATA_KEYS = ('models', 'samplers', 'dimensions', 'seed', 'steps', 'cfg', 'scheduler', 'vaes')


def diff_words(text_a: Optional[str], text_b: Optional[str]) -> Dict[str, Any]:
    """Word-level diff.

    Returns ``{"same": bool, "diff_a": [...], "diff_b": [...]}`` where each
    diff is a list of ``{"type": "same"|"removed"|"added", "text": str}``.
    """
    words_a = (text_a or "").split()
    words_b = (text_b or "").split()
    if words_a == words_b:
        return {"same": True, "diff_a": [], "diff_b": []}

    diff_a, diff_b = [], []
    matcher = SequenceMatcher(a=words_a, b=words_b, autojunk=False)
    for tag, a_start, a_end, b_start, b_end in matcher.get_opcodes():
        if tag == 'equal':
            text = " ".join(words_a[a_start:a_end])
            diff_a.append({"type": "same", "text": text})
            diff_b.append({"type": "same", "text": text})
            continue
        if a_end > a_start:
            diff_a.append({"type": "removed", "text": " ".join(words_a[a_start:a_end])})
        if b_end > b_start:
            diff_b.append({"type": "added", "text": " ".join(words_b[b_start:b_end])})

    return {"same": False, "diff_a": diff_a, "diff_b": diff_b}


def _prompts_by_type(prompts: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    grouped = {prompt_type: [] for prompt_type in PROMPT_TYPE_ORDER}
    for prompt in prompts or []:
        grouped.setdefault(prompt.get("prompt_type") or "unknown", []).append(prompt.get("prompt_text") or "")
    return grouped


def compare_workflows(workflow_a: Dict[str, Any], workflow_b: Dict[str, Any]) -> Dict[str, Any]:
    """Compare two workflow detail dicts (as returned by ``WorkflowManager.get_workflow``)."""
    prompts_a = _prompts_by_type(workflow_a.get("prompts"))
    prompts_b = _prompts_by_type(workflow_b.get("prompts"))

    prompt_rows = []
    for prompt_type in dict.fromkeys([*prompts_a, *prompts_b]):
        pairs = zip_longest(prompts_a.get(prompt_type, []), prompts_b.get(prompt_type, []))
        for index, (text_a, text_b) in enumerate(pairs):
            prompt_rows.append({
                "prompt_type": prompt_type,
                "index": index,
                "text_a": text_a,
                "text_b": text_b,
                **diff_words(text_a, text_b),
            })

    metadata_a = workflow_a.get("metadata") or {}
    metadata_b = workflow_b.get("metadata") or {}
    metadata_rows = []
    for key in COMPARED_METADATA_KEYS:
        value_a, value_b = metadata_a.get(key), metadata_b.get(key)
        metadata_rows.append({"key": key, "value_a": value_a, "value_b": value_b, "same": value_a == value_b})

    changed_prompts = sum(1 for row in prompt_rows if not row["same"])
    changed_metadata = [row["key"] for row in metadata_rows if not row["same"]]

    return {
        "workflows": [
            {"id": workflow_a.get("id"), "name": workflow_a.get("name")},
            {"id": workflow_b.get("id"), "name": workflow_b.get("name")},
        ],
        "prompts": prompt_rows,
        "metadata": metadata_rows,
        "summary": f"{changed_prompts} prompt(s) differ; metadata differs in: "
                   f"{', '.join(changed_metadata) if changed_metadata else 'nothing'}",
    }
