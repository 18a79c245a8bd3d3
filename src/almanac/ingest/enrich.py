"""Best-effort item enrichment: LLM summary and auto-tags via LiteLLM.

Failures never propagate: each step is reported back as a warning string so
the caller can surface it without failing the ingestion.
"""

from __future__ import annotations

import logging

from almanac.db.models import Item
from almanac.db.repository import Repository
from almanac.rag import llm_client

logger = logging.getLogger(__name__)

# Content shorter than this is not worth a model call.
MIN_ENRICH_CHARS = 100
MAX_TAGS = 5
_MAX_TAG_CHARS = 49

_SUMMARY_PROMPT = """\
Summarize the following content in 2-3 concise sentences. Focus on the main \
topics and key points. Do not include any preamble like 'Here is a summary' - \
just provide the summary directly.

Content:
{content}"""

_TAGS_PROMPT = """\
Based on the following content, suggest 3-5 relevant tags (single words or \
short phrases) that categorize this content. Return only the tags, one per \
line, without numbers or bullets.

Title: {title}

Content:
{content}"""


def _truncate(text: str, limit: int) -> str:
    return f"{text[:limit]}..." if len(text) > limit else text


def parse_tags(raw: str) -> list[str]:
    """Clean a one-tag-per-line model reply into at most five lower-case tags."""
    tags: list[str] = []
    for line in raw.splitlines():
        tag = line.strip().lstrip("0123456789.-*").strip().lower()
        if tag and len(tag) <= _MAX_TAG_CHARS and tag not in tags:
            tags.append(tag)
        if len(tags) == MAX_TAGS:
            break
    return tags


class Enricher:
    """Generate a summary and tags for a freshly ingested item.

    Args:
        repo: Open Repository instance.
        model: LiteLLM model string for generation.
        generate_summary: Whether to write ``items.summary``.
        auto_tag: Whether to attach suggested tags.
    """

    def __init__(
        self,
        repo: Repository,
        model: str,
        generate_summary: bool = True,
        auto_tag: bool = True,
    ) -> None:
        self._repo = repo
        self._model = model
        self._generate_summary = generate_summary
        self._auto_tag = auto_tag

    @property
    def enabled(self) -> bool:
        return self._generate_summary or self._auto_tag

    def enrich(self, item: Item, content: str) -> list[str]:
        """Enrich *item* in place and in the DB. Returns warning messages."""
        if not self.enabled or len(content.strip()) < MIN_ENRICH_CHARS:
            return []

        warnings: list[str] = []
        if self._generate_summary and not item.summary:
            try:
                summary = self._summarize(content)
                if summary:
                    item.summary = summary
                    self._repo.update_item(item)
            except Exception as exc:
                logger.warning("Summary generation failed for %s: %s", item.title, exc)
                warnings.append(f"Summary generation failed: {exc}")

        if self._auto_tag:
            try:
                for tag in self._suggest_tags(item.title, content):
                    self._repo.tag_item(item.id, tag)
            except Exception as exc:
                logger.warning("Auto-tagging failed for %s: %s", item.title, exc)
                warnings.append(f"Auto-tagging failed: {exc}")

        return warnings

    def _summarize(self, content: str) -> str:
        prompt = _SUMMARY_PROMPT.format(content=_truncate(content, 4000))
        reply = llm_client.complete(
            self._model,
            [{"role": "user", "content": prompt}],
            max_tokens=200,
            temperature=0.3,
        )
        return reply.strip()

    def _suggest_tags(self, title: str, content: str) -> list[str]:
        prompt = _TAGS_PROMPT.format(title=title, content=_truncate(content, 3000))
        reply = llm_client.complete(
            self._model,
            [{"role": "user", "content": prompt}],
            max_tokens=100,
            temperature=0.5,
        )
        return parse_tags(reply)
