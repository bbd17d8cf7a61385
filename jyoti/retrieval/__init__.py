"""Knowledge retrieval: embeddings, vector store and the degrading retriever."""

from jyoti.retrieval.embeddings import (
    EmbeddingProvider,
    HashEmbedder,
    OpenAIEmbedder,
    SentenceTransformerEmbedder,
    get_embedding_provider,
)
from jyoti.retrieval.retriever import Retriever
from jyoti.retrieval.vector_store import KnowledgeStore

__all__ = [
    "EmbeddingProvider",
    "HashEmbedder",
    "KnowledgeStore",
    "OpenAIEmbedder",
    "Retriever",
    "SentenceTransformerEmbedder",
    "get_embedding_provider",
]
