import logging
from typing import Dict, List, Optional, Sequence

from .datasets import DatasetStore
from .identifiers import DatasetName

logger = logging.getLogger(__name__)

NO_CONTEXT = "No specific context found from the database for this query."
CONTEXT_SEPARATOR = "\n---\n"


def retrieve_context(store: DatasetStore, embedder, dataset: DatasetName, query: str,
                     limit: int = 3, max_distance: Optional[float] = None) -> List[str]:
    q_vec = embedder.embed(query)
    logger.debug("Query embedding dimensions: %d", len(q_vec))
    chunks = store.nearest_chunks(dataset, q_vec, limit=limit, max_distance=max_distance)
    if not chunks:
        logger.info('No relevant context chunks found in dataset "%s" for the query.', dataset)
    return chunks


# history = [{"sender": "user", "text": "Hi"}, {"sender": "ai", "text": "Hello!"}]
def format_history(history: Sequence[Dict]) -> str:
    return "\n".join(
        f"{'User' if h.get('sender') == 'user' else 'AI'}: {h.get('text', '')}"
        for h in history
    )


def build_prompt(query: str, context_chunks: Sequence[str], history: Sequence[Dict] = ()) -> str:
    context = CONTEXT_SEPARATOR.join(context_chunks) if context_chunks else NO_CONTEXT
    history_str = format_history(history)

    lines = []
    if history_str:
        lines += ["Previous conversation:", history_str, "", "---"]
    lines += [
        "Based on the following context, answer the user's question.",
        'If the context is "No specific context found...", try to answer based on general '
        "knowledge but clearly state that the specific information was not found in the "
        "provided documents.",
        "",
        "Context:",
        "---",
        context,
        "---",
        f"User Question: {query}",
        "",
        "Answer:",
    ]
    return "\n".join(lines)
