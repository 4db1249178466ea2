"""Heuristic retry policy for replies that talk about the agent instead of the task.

Pattern matching only; a miss or a false positive costs one extra turn at most.
"""

from __future__ import annotations

import re

_CAPABILITY_QUESTION = re.compile(
    r"(?:\bwhat can you do\b|capabilities|permissions|sandbox|approval policy|read-?only|memory model"
    r"|ako funguje .*pam[aä]ť|[čc]o .*vie[šs] robi[ťt]|[čc]o .*m[oô][žz]e[šs])",
    re.IGNORECASE,
)

_META_REPLY = re.compile(
    r"(?:\bread-?only\b|approval policy|v tejto rel[aá]cii|po[cč]as tejto konverz[aá]cie"
    r"|nem[oô][žz]em .*zapis|nem[oô][žz]em .*uprav|i can(?:not|'t)? .*write|i can only read"
    r"|ako funguje moja pam[aä]ť)",
    re.IGNORECASE,
)


def asks_about_capabilities(user_content: str) -> bool:
    return bool(_CAPABILITY_QUESTION.search(user_content))


def looks_like_meta_reply(reply: str) -> bool:
    return bool(_META_REPLY.search(reply))


def should_retry(user_content: str, reply: str) -> bool:
    return looks_like_meta_reply(reply) and not asks_about_capabilities(user_content)


def build_retry_prompt(user_content: str) -> str:
    return "\n".join(
        [
            "Rewrite your previous response.",
            "Strict rules:",
            "- Do NOT discuss your capabilities, sandbox, approval policy, or memory model.",
            "- Answer only the user's request directly.",
            "- Keep it practical and concise.",
            "",
            f"User request:\n{user_content}",
        ]
    )
