import asyncio
from sentence_transformers import SentenceTransformer
from typing import List
import logging
import numpy as np

from nlq_engine.domain.interfaces import IEmbeddingService
from nlq_engine.domain.exceptions import EmbeddingProviderUnavailable

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder(IEmbeddingService):
    """
    Embedding service using Sentence Transformers (384 dims for all-MiniLM-L6-v2)
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self.model = None
        self._load_model()

    def _load_model(self):
        """Load the embedding model"""
        try:
            logger.info(f"Loading embedding model: {self.model_name}")
            self.model = SentenceTransformer(self.model_name)
            logger.info(f"Model {self.model_name} loaded successfully")
        except Exception as e:
            logger.error(f"Failed to load model {self.model_name}: {e}")
            raise EmbeddingProviderUnavailable(f"Could not load {self.model_name}: {e}") from e

    async def embed_text(self, text: str) -> List[float]:
        """Generate a normalized embedding for a single text"""
        try:
            if not self.model:
                self._load_model()

            embedding = await asyncio.to_thread(
                self.model.encode,
                text,
                convert_to_numpy=True,
                normalize_embeddings=True
            )
            return np.asarray(embedding, dtype=np.float32).tolist()

        except EmbeddingProviderUnavailable:
            raise
        except Exception as e:
            logger.error(f"Error generating embedding: {e}")
            raise EmbeddingProviderUnavailable(str(e)) from e

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts"""
        try:
            if not self.model:
                self._load_model()

            embeddings = await asyncio.to_thread(
                self.model.encode,
                texts,
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=len(texts) > 100
            )
            return embeddings.tolist()

        except EmbeddingProviderUnavailable:
            raise
        except Exception as e:
            logger.error(f"Error generating batch embeddings: {e}")
            raise EmbeddingProviderUnavailable(str(e)) from e
