"""
Fractal Workspace - Shared vector space for iterative weaving

WHAT: Hashed text embeddings, contribution blending, coherence and entropy
WHERE: standingwave/runtime/workspace.py - used only by the weaving protocol
WHO: WeavingProtocol (one workspace per turn), weaving validity gate
TIME: Embedding O(words), coherence O(models^2 · dim)

The workspace lives for a single turn. Each model role contributes once per
round; its contribution is embedded into a fixed-length vector and blended
into the active vector as ``existing*0.7 + new*0.3``. Coherence is the mean
pairwise cosine similarity (mapped to [0, 1]) across the latest contribution
of every role; entropy is the normalised magnitude of the blended vector.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict

import numpy as np

EMBEDDING_DIM = 128
BLEND_EXISTING = 0.7
BLEND_NEW = 0.3


def embed_text(text: str, dim: int = EMBEDDING_DIM) -> np.ndarray:
    """Deterministic word-hash embedding, L2-normalised."""

    vector = np.zeros(dim, dtype=np.float32)
    for i, word in enumerate(text.split()):
        h = 0
        for b in word.encode("utf-8"):
            h = (h * 31 + b) & 0xFFFFFFFF
        weight = 1.0 / math.sqrt(i + 1)
        vector[h % dim] += weight * 0.5
        vector[(h // dim) % dim] += weight * 0.5

    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        vector /= norm
    return vector


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float | None:
    """Cosine similarity, or ``None`` when either vector has zero magnitude."""
    mag_a = float(np.linalg.norm(a))
    mag_b = float(np.linalg.norm(b))
    if mag_a == 0.0 or mag_b == 0.0:
        return None
    return float(np.dot(a, b) / (mag_a * mag_b))


def text_coherence(text: str) -> float:
    """Cheap structural coherence estimate for woven text (no model call)."""

    if not text:
        return 0.3

    word_count = len(text.split())
    sentence_count = max(text.count("."), 1)
    avg_sentence = word_count / sentence_count

    if 20 <= word_count <= 300:
        length_score = 0.9
    elif word_count >= 10:
        length_score = 0.7
    else:
        length_score = 0.4

    if 10.0 <= avg_sentence <= 25.0:
        structure_score = 0.9
    elif 5.0 <= avg_sentence <= 40.0:
        structure_score = 0.7
    else:
        structure_score = 0.5

    curiosity_bonus = 0.1 if "?" in text else 0.0
    return max(0.0, min(1.0, length_score * 0.4 + structure_score * 0.6 + curiosity_bonus))


@dataclass(slots=True)
class FractalWorkspace:
    original_input: str
    active_vector: np.ndarray
    contributions: Dict[str, np.ndarray] = field(default_factory=dict)
    coherence_score: float = 0.0
    entropy: float = 0.5
    round: int = 0
    rounds_completed: int = 0
    woven_text: str = ""

    @classmethod
    def new(cls, user_text: str, dim: int = EMBEDDING_DIM) -> "FractalWorkspace":
        return cls(original_input=user_text, active_vector=embed_text(user_text, dim))

    @property
    def dim(self) -> int:
        return int(self.active_vector.shape[0])

    def integrate_contribution(self, model_id: str, contribution: np.ndarray) -> None:
        vector = np.asarray(contribution, dtype=np.float32)
        self.contributions[model_id] = vector
        if vector.shape == self.active_vector.shape:
            self.active_vector = self.active_vector * BLEND_EXISTING + vector * BLEND_NEW
        self.update_coherence()

    def update_coherence(self) -> None:
        vectors = list(self.contributions.values())
        if len(vectors) < 2:
            self.coherence_score = 0.0
        else:
            total = 0.0
            pairs = 0
            for i in range(len(vectors)):
                for j in range(i + 1, len(vectors)):
                    if vectors[i].shape != vectors[j].shape:
                        continue
                    similarity = cosine_similarity(vectors[i], vectors[j])
                    if similarity is None:
                        continue
                    total += (similarity + 1.0) / 2.0
                    pairs += 1
            self.coherence_score = min(1.0, max(0.0, total / pairs)) if pairs else 0.0

        magnitude = float(np.linalg.norm(self.active_vector))
        self.entropy = min(1.0, max(0.0, magnitude / math.sqrt(self.dim)))

    def update_woven_text(self, text: str) -> None:
        self.woven_text = text

    def to_context(self) -> str:
        lines = [f"Original Query: {self.original_input}", ""]
        if self.woven_text:
            lines.extend([f"Current Thought (Round {self.round}): {self.woven_text}", ""])
        lines.append(
            f"Workspace State: Coherence={self.coherence_score:.3f}, "
            f"Entropy={self.entropy:.3f}, Models={len(self.contributions)}"
        )
        return "\n".join(lines)

    def extract_final_thought(self) -> str:
        if self.woven_text:
            return self.woven_text
        return (
            f"Thought coherence: {self.coherence_score:.2f}. "
            f"{len(self.contributions)} models contributed to this integrated response."
        )


__all__ = [
    "EMBEDDING_DIM",
    "FractalWorkspace",
    "cosine_similarity",
    "embed_text",
    "text_coherence",
]
