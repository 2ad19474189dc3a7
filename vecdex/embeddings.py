"""Embedding generation using sentence-transformers."""

import logging

from vecdex.cache import EmbeddingCache, get_cache
from vecdex.config import Config, get_config

logger = logging.getLogger(__name__)


class EmbeddingModel:
    """Wrapper around sentence-transformers for generating embeddings.

    The model is loaded lazily on first use.
    """

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self._model = None

    @property
    def dimension(self) -> int:
        """Return the embedding dimension of the configured model."""
        return self._ensure_model().get_sentence_embedding_dimension()

    def _ensure_model(self):
        """Load the model if not already loaded."""
        if self._model is None:
            logger.info("Loading embedding model: %s", self.config.embedding_model)
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.config.embedding_model)
            logger.info("Model loaded (dimension=%d)", self._model.get_sentence_embedding_dimension())
        return self._model

    def embed(self, text: str, normalize: bool = False, precision: int | None = None) -> list[float]:
        """Encode a single text into a rounded embedding.

        Args:
            text: Text to encode.
            normalize: Scale the embedding to unit length.
            precision: Decimal digits kept per coordinate. Defaults to
                config.embedding_precision.

        Returns:
            The embedding as a list of floats.
        """
        precision = self.config.embedding_precision if precision is None else precision
        model = self._ensure_model()
        output = model.encode(
            [text],
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=normalize,
        )
        return [round(float(value), precision) for value in output[0]]


_model: EmbeddingModel | None = None


def get_embedding(
    text: str,
    normalize: bool = False,
    precision: int | None = None,
    model: EmbeddingModel | None = None,
    cache: EmbeddingCache | None = None,
) -> list[float]:
    """Embed ``text``, computing it at most once per distinct text.

    The cache is keyed by text only, so the first call's ``normalize`` and
    ``precision`` win for later calls with the same text.
    """
    global _model
    cache = cache if cache is not None else get_cache()
    cached = cache.get(text)
    if cached is not None:
        return list(cached)

    if model is None:
        if _model is None:
            _model = EmbeddingModel()
        model = _model
    embedding = model.embed(text, normalize=normalize, precision=precision)
    cache.set(text, embedding)
    return list(embedding)
