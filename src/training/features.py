# ==============================================================================
# SMS Feature Extraction
# ==============================================================================
#
# Hashed term-frequency features with IDF weighting for SMS messages.
#
# Pipeline:
#   1. tokenize(): lowercase, strip punctuation and the digits 0/1, drop
#      stop words and tokens of length <= 2
#   2. hash_term_frequencies(): bucket tokens by MurmurHash3 (seed 42)
#      modulo the number of features, counting occurrences
#   3. DocumentFrequencyAggregator: document frequencies over the corpus
#   4. idf_normalize(): multiply term frequencies by the IDF vector
#
# Hashing:
#   murmur3_x86_32() follows the byte-wise variant used by Spark's unsafe
#   hashing: trailing bytes (len % 4) are sign-extended and mixed one at a
#   time instead of being packed into a single tail word. For inputs whose
#   length is a multiple of 4 the result equals reference MurmurHash3.
#
# Usage:
#   feature_model = SpamFeatureModel.fit(messages)
#   weights = feature_model.transform(messages)   # (n, 1024) float32
#   vector = feature_model.weigh("Free entry in 2 a wkly comp")
#
# The same feature model is persisted next to the classifier so serving
# applies exactly the training transform.
#
# ==============================================================================

import re
import struct
from typing import Iterable, List, Sequence

import numpy as np
from numpy import ndarray

DEFAULT_NUM_FEATURES = 1024
DEFAULT_MIN_DOC_FREQ = 4
DEFAULT_SEED = 42

# MLflow artifact holding SpamFeatureModel.to_dict()
FEATURE_MODEL_ARTIFACT = "feature_model.json"

IGNORE_WORDS = frozenset({"the", "not", "for"})
IGNORE_CHARS = re.compile(r"[,:;/<>\".()?\-'!01 ]")
MULTI_SPACE = re.compile(r"  +")
MIN_TOKEN_LENGTH = 3
# Control characters and space; U+0085 and U+00A0 are not trimmed
TRIM_CHARS = "".join(map(chr, range(0x21)))

_C1 = 0xCC9E2D51
_C2 = 0x1B873593
_MASK32 = 0xFFFFFFFF


# ============================================== #
# 🔹 SECTION: Tokenization
# ============================================== #
def tokenize(text: str) -> List[str]:
    """Split an SMS into lowercase tokens.

    Only spaces separate tokens, other whitespace is kept inside tokens.
    """
    cleaned = IGNORE_CHARS.sub(" ", text.lower())
    cleaned = MULTI_SPACE.sub(" ", cleaned).strip(TRIM_CHARS)
    return [
        word
        for word in cleaned.split(" ")
        if word not in IGNORE_WORDS and len(word) >= MIN_TOKEN_LENGTH
    ]


# ============================================== #
# 🔹 SECTION: MurmurHash3
# ============================================== #
def _rotl32(x: int, r: int) -> int:
    return ((x << r) | (x >> (32 - r))) & _MASK32


def _mix_k1(k1: int) -> int:
    k1 = (k1 * _C1) & _MASK32
    k1 = _rotl32(k1, 15)
    return (k1 * _C2) & _MASK32


def _mix_h1(h1: int, k1: int) -> int:
    h1 ^= k1
    h1 = _rotl32(h1, 13)
    return (h1 * 5 + 0xE6546B64) & _MASK32


def _fmix(h1: int, length: int) -> int:
    h1 ^= length
    h1 ^= h1 >> 16
    h1 = (h1 * 0x85EBCA6B) & _MASK32
    h1 ^= h1 >> 13
    h1 = (h1 * 0xC2B2AE35) & _MASK32
    h1 ^= h1 >> 16
    return h1


def _to_signed32(x: int) -> int:
    return x - (1 << 32) if x & 0x80000000 else x


def murmur3_x86_32(data: bytes, seed: int = DEFAULT_SEED) -> int:
    """32-bit MurmurHash3 (x86) of `data`, returned as a signed int.

    Args:
        data: Bytes to hash
        seed: Hash seed, interpreted as an unsigned 32-bit value

    Returns:
        Hash in range [-2**31, 2**31 - 1]
    """
    length = len(data)
    aligned = length - length % 4
    h1 = seed & _MASK32

    for (k1,) in struct.iter_unpack("<I", data[:aligned]):
        h1 = _mix_h1(h1, _mix_k1(k1))

    for byte in data[aligned:]:
        # Bytes are signed, 0x80..0xff extend to negative ints
        half_word = (byte - 256 if byte > 127 else byte) & _MASK32
        h1 = _mix_h1(h1, _mix_k1(half_word))

    return _to_signed32(_fmix(h1, length))


def hash_term(term: str, seed: int = DEFAULT_SEED) -> int:
    return murmur3_x86_32(term.encode("utf-8"), seed)


def term_index(
    term: str, num_features: int = DEFAULT_NUM_FEATURES, seed: int = DEFAULT_SEED
) -> int:
    """Bucket of `term`, always in [0, num_features)."""
    return hash_term(term, seed) % num_features


def hash_term_frequencies(
    tokens: Iterable[str],
    num_features: int = DEFAULT_NUM_FEATURES,
    seed: int = DEFAULT_SEED,
) -> ndarray:
    """Count tokens per hash bucket."""
    tf = np.zeros(num_features, dtype=np.float64)
    for token in tokens:
        tf[term_index(token, num_features, seed)] += 1.0
    return tf


# ============================================== #
# 🔹 SECTION: Inverse Document Frequency
# ============================================== #
class DocumentFrequencyAggregator:
    """Accumulates document frequencies of hashed term-frequency vectors."""

    def __init__(self, size: int = 0):
        self.m = 0
        self.df = np.zeros(size, dtype=np.int64)

    @property
    def is_empty(self) -> bool:
        return self.m == 0

    def add(self, doc: ndarray) -> "DocumentFrequencyAggregator":
        """Count one document: every non-zero bucket gets +1."""
        self.df += np.asarray(doc) > 0
        self.m += 1
        return self

    def merge(self, other: "DocumentFrequencyAggregator") -> "DocumentFrequencyAggregator":
        if other.is_empty:
            return self
        if self.is_empty:
            self.df = other.df.copy()
        else:
            if self.df.shape != other.df.shape:
                raise ValueError(
                    f"Cannot merge aggregators of size {self.df.size} and {other.df.size}"
                )
            self.df += other.df
        self.m += other.m
        return self

    def idf(self, min_doc_freq: int) -> ndarray:
        """IDF vector log((m + 1) / (df + 1)), zero for rare buckets."""
        if self.is_empty:
            raise RuntimeError("Haven't seen any document yet.")
        inv = np.log((self.m + 1.0) / (self.df + 1.0))
        return np.where(self.df >= min_doc_freq, inv, 0.0)


def idf_normalize(idf: ndarray, values: ndarray) -> ndarray:
    """Transform a term frequency vector (or matrix) to TF-IDF."""
    return np.asarray(values) * np.asarray(idf)


# ============================================== #
# 🔹 SECTION: Feature Model
# ============================================== #
class SpamFeatureModel:
    """Fitted hashing TF-IDF transform for SMS messages."""

    def __init__(
        self,
        idf: Sequence[float],
        num_features: int = DEFAULT_NUM_FEATURES,
        min_doc_freq: int = DEFAULT_MIN_DOC_FREQ,
        seed: int = DEFAULT_SEED,
    ):
        idf = np.asarray(idf, dtype=np.float64)
        if idf.shape != (num_features,):
            raise ValueError(
                f"IDF vector has shape {idf.shape}, expected ({num_features},)"
            )
        self.idf = idf
        self.num_features = num_features
        self.min_doc_freq = min_doc_freq
        self.seed = seed

    @classmethod
    def fit(
        cls,
        messages: Iterable[str],
        num_features: int = DEFAULT_NUM_FEATURES,
        min_doc_freq: int = DEFAULT_MIN_DOC_FREQ,
        seed: int = DEFAULT_SEED,
    ) -> "SpamFeatureModel":
        model, _ = cls._fit_tf(messages, num_features, min_doc_freq, seed)
        return model

    @classmethod
    def fit_transform(
        cls,
        messages: Iterable[str],
        num_features: int = DEFAULT_NUM_FEATURES,
        min_doc_freq: int = DEFAULT_MIN_DOC_FREQ,
        seed: int = DEFAULT_SEED,
    ):
        """Fit on `messages` and return (model, TF-IDF matrix)."""
        model, tf = cls._fit_tf(messages, num_features, min_doc_freq, seed)
        return model, model._to_weights(tf)

    @classmethod
    def _fit_tf(cls, messages, num_features, min_doc_freq, seed):
        tf = [
            hash_term_frequencies(tokenize(msg), num_features, seed)
            for msg in messages
        ]
        aggregator = DocumentFrequencyAggregator(num_features)
        for doc in tf:
            aggregator.add(doc)
        model = cls(
            aggregator.idf(min_doc_freq),
            num_features=num_features,
            min_doc_freq=min_doc_freq,
            seed=seed,
        )
        return model, np.array(tf).reshape(len(tf), num_features)

    def term_frequencies(self, message: str) -> ndarray:
        return hash_term_frequencies(tokenize(message), self.num_features, self.seed)

    def weigh(self, message: str) -> ndarray:
        """TF-IDF vector of a single message."""
        return idf_normalize(self.idf, self.term_frequencies(message)).astype(
            np.float32
        )

    def transform(self, messages: Iterable[str]) -> ndarray:
        tf = [self.term_frequencies(msg) for msg in messages]
        return self._to_weights(np.array(tf).reshape(len(tf), self.num_features))

    def _to_weights(self, tf: ndarray) -> ndarray:
        return idf_normalize(self.idf, tf).astype(np.float32)

    @property
    def active_features(self) -> int:
        """Buckets that survived the minimum document frequency."""
        return int(np.count_nonzero(self.idf))

    def to_dict(self) -> dict:
        return {
            "num_features": self.num_features,
            "min_doc_freq": self.min_doc_freq,
            "seed": self.seed,
            "idf": self.idf.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SpamFeatureModel":
        return cls(
            data["idf"],
            num_features=int(data["num_features"]),
            min_doc_freq=int(data["min_doc_freq"]),
            seed=int(data["seed"]),
        )
