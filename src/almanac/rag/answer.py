"""Question answering over the knowledge base.

Pipeline:
  1. Retrieve the best-matching chunks (hybrid, BM25 when embedding fails).
  2. Number each chunk as a source block under its item title.
  3. Ask the generation model to answer from those blocks only.

No model call is made when retrieval finds nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from almanac.db.repository import Repository
from almanac.errors import GenerationFailure
from almanac.rag import llm_client
from almanac.rag.retriever import RetrieverConfig, SimilarityResult, retrieve

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a helpful assistant that answers questions based on the provided \
context from a personal knowledge base.

Guidelines:
- Base your answers on the context provided
- If the context doesn't contain enough information, acknowledge that
- Be concise but thorough
- When relevant, mention which source(s) your answer is based on
- Do not make up information not present in the context"""

_USER_PROMPT = """\
Use the following context to answer the question. If the context doesn't \
contain relevant information, say so.

Context:
{context}

Question: {question}

Answer:"""


@dataclass
class AnswerConfig:
    generation_model: str = "ollama/llama3.1"
    max_context: int = 5           # chunks placed in the prompt
    max_tokens: int = 1024
    temperature: float = 0.7


@dataclass
class Answer:
    """A generated answer with the chunks it was grounded on.

    ``text`` is empty when retrieval found no context.
    """

    question: str
    text: str = ""
    sources: list[SimilarityResult] = field(default_factory=list)


def build_messages(question: str, sources: list[SimilarityResult]) -> list[dict]:
    """Chat messages asking *question* against numbered *sources*."""
    blocks = [
        f"[{i}] From: {src.item_title}\n{src.chunk.content}"
        for i, src in enumerate(sources, start=1)
    ]
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": _USER_PROMPT.format(context="\n\n".join(blocks), question=question),
        },
    ]


def answer(
    question: str,
    repo: Repository,
    retriever_config: RetrieverConfig,
    config: AnswerConfig,
) -> Answer:
    """Retrieve context for *question* and generate an answer from it.

    Raises:
        GenerationFailure: If the model call fails.
    """
    sources = retrieve(question, repo, replace(retriever_config, limit=config.max_context))
    if not sources:
        logger.info("No context found for question %r", question)
        return Answer(question=question)

    logger.debug("Answering from %d chunk(s) with %s", len(sources), config.generation_model)
    try:
        reply = llm_client.complete(
            config.generation_model,
            build_messages(question, sources),
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    except Exception as exc:
        raise GenerationFailure(config.generation_model, str(exc)) from exc
    return Answer(question=question, text=reply.strip(), sources=sources)
