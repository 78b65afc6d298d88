"""In-process embedding provider backed by `sentence-transformers`.

Architectural role:
    Offers an offline alternative to the HTTP provider. The model is loaded
    lazily on first use, picks CPU vs CUDA once, and is reused afterwards.

Design intent:
    - Keep model initialization inside the provider instance (no module global).
    - Apply a conservative VRAM gate before enabling GPU execution.
    - Honor E5-style `query:` / `passage:` prefixes for asymmetric retrieval.
"""

import logging
import os
import threading
from typing import List, Optional, Sequence

import numpy as np

from ragserver.errors import EmbeddingProviderError


logger = logging.getLogger(__name__)


DEFAULT_MODEL = "intfloat/multilingual-e5-small"


def has_enough_vram(min_required_mb: int = 800) -> bool:
    """Return whether enough free GPU memory is available for embeddings.

    Args:
        min_required_mb: Minimum required free VRAM in megabytes.

    Returns:
        `True` when CUDA is available and free VRAM exceeds the threshold.
    """
    import torch

    if not torch.cuda.is_available():
        return False

    free_mem, _total_mem = torch.cuda.mem_get_info()
    free_mb = free_mem / 1024 / 1024

    logger.info("Free VRAM: %.0f MB", free_mb)

    return free_mb > min_required_mb


def _load_sentence_transformer(model_name: str):
    """Load a `SentenceTransformer` on CUDA when VRAM allows, CPU otherwise.

    Side effects:
        Sets `CUDA_VISIBLE_DEVICES=""` in CPU fallback mode.
    """
    try:
        use_gpu = has_enough_vram()
    except Exception:
        logger.debug("CUDA probe failed, using CPU", exc_info=True)
        use_gpu = False

    if not use_gpu:
        logger.info("Insufficient VRAM detected. Forcing CPU mode.")
        os.environ["CUDA_VISIBLE_DEVICES"] = ""

    from sentence_transformers import SentenceTransformer

    device = "cuda" if use_gpu else "cpu"
    logger.info("Loading embedding model %s on %s", model_name, device.upper())
    return SentenceTransformer(model_name, device=device)


class SentenceTransformerEmbeddingProvider:
    """Embedding provider running a local `SentenceTransformer` model.

    Args:
        model_name: Hugging Face model id.
        model: Preloaded model object exposing `encode` and
            `get_sentence_embedding_dimension`; loaded lazily when omitted.
        use_prefixes: Prepend `query: ` / `passage: ` (E5 convention).
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, model=None, use_prefixes: bool = True):
        self.model_name = model_name
        self._model = model
        self._use_prefixes = use_prefixes
        self._lock = threading.Lock()

    def _get_model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    self._model = _load_sentence_transformer(self.model_name)
        return self._model

    @property
    def dimension(self) -> int:
        return int(self._get_model().get_sentence_embedding_dimension())

    def _prefixed(self, text: str, is_query: bool) -> str:
        if not self._use_prefixes:
            return text
        return ("query: " if is_query else "passage: ") + text

    def embed(self, text: str, is_query: bool = False, timeout: Optional[float] = None) -> List[float]:
        """Embed one text into a normalized vector. `timeout` is not applicable in-process."""
        return self._encode([self._prefixed(text, is_query)], operation="embed")[0]

    def embed_batch(self, texts: Sequence[str], timeout: Optional[float] = None) -> List[List[float]]:
        """Embed many passages, preserving input order."""
        texts = list(texts)
        if not texts:
            return []
        return self._encode([self._prefixed(t, False) for t in texts], operation="embed_batch")

    def _encode(self, texts: List[str], operation: str) -> List[List[float]]:
        try:
            vecs = self._get_model().encode(texts, normalize_embeddings=True)
        except Exception as err:
            raise EmbeddingProviderError(
                f"local embedding failed: {err}", operation=operation
            ) from err

        vecs = np.asarray(vecs, dtype="float32")
        if vecs.ndim == 1:
            vecs = vecs.reshape(1, -1)
        return vecs.tolist()
