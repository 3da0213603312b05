"""
Word-level vocabulary.

Reserved ids:
    0: <pad>   1: <start>   2: <end>   3: <unk>

Every other token gets an id from 4 upward, in the order it was first seen in
the corpus, provided its total frequency reaches the threshold.
"""

import os
import pickle
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional

import torch

PAD_TOKEN = "<pad>"
START_TOKEN = "<start>"
END_TOKEN = "<end>"
UNK_TOKEN = "<unk>"

SPECIAL_TOKENS = [PAD_TOKEN, START_TOKEN, END_TOKEN, UNK_TOKEN]

# Unicode letters and digits, no underscore or punctuation
_WORD_RE = re.compile(r"[^\W_]+")


class VocabularyNotBuiltError(RuntimeError):
    """Raised when the id space is used before build() or load()."""

    def __init__(self, message: str = "vocabulary not initialized: call build() or load() first"):
        super().__init__(message)


def tokenize(text: str) -> List[str]:
    return _WORD_RE.findall(text.lower())


class Vocabulary:
    """
    Closed token set mapping words <-> integer ids.

    Args:
        freq_threshold: Minimum corpus frequency for a token to get its own id
    """

    def __init__(self, freq_threshold: int = 5):
        if freq_threshold < 1:
            raise ValueError(f"freq_threshold must be >= 1, got {freq_threshold}")
        self.freq_threshold = freq_threshold
        self.itos: List[str] = []
        self.stoi: Dict[str, int] = {}

    def __len__(self):
        return len(self.itos)

    def __contains__(self, token):
        return token in self.stoi

    @property
    def is_built(self) -> bool:
        return bool(self.itos)

    def _require_built(self):
        if not self.is_built:
            raise VocabularyNotBuiltError()

    # ------------------------------------------------------------------ #
    #  Construction
    # ------------------------------------------------------------------ #

    def build(self, corpus: Iterable[str]) -> 'Vocabulary':
        """Count tokens over the whole corpus and assign ids to frequent ones."""
        frequencies = Counter()
        for sentence in corpus:
            frequencies.update(tokenize(sentence))

        self.itos = list(SPECIAL_TOKENS)
        for word, freq in frequencies.items():
            if freq >= self.freq_threshold:
                self.itos.append(word)
        self.stoi = {tok: i for i, tok in enumerate(self.itos)}

        print(f"✓ Built vocabulary: {len(self.itos)} tokens "
              f"({len(frequencies)} distinct words, threshold={self.freq_threshold})")
        return self

    # ------------------------------------------------------------------ #
    #  Special ids
    # ------------------------------------------------------------------ #

    @property
    def pad_id(self) -> int:
        self._require_built()
        return self.stoi[PAD_TOKEN]

    @property
    def start_id(self) -> int:
        self._require_built()
        return self.stoi[START_TOKEN]

    @property
    def end_id(self) -> int:
        self._require_built()
        return self.stoi[END_TOKEN]

    @property
    def unk_id(self) -> int:
        self._require_built()
        return self.stoi[UNK_TOKEN]

    # ------------------------------------------------------------------ #
    #  Text <-> ids
    # ------------------------------------------------------------------ #

    def numericalize(self, text: str) -> List[int]:
        """Token ids for `text`, unseen words become <unk>."""
        unk_id = self.unk_id
        return [self.stoi.get(token, unk_id) for token in tokenize(text)]

    def encode(self, text: str) -> torch.Tensor:
        """Numericalized caption wrapped in <start> ... <end>."""
        ids = [self.start_id] + self.numericalize(text) + [self.end_id]
        return torch.tensor(ids, dtype=torch.long)

    def decode(self, token_ids: Iterable[int]) -> List[str]:
        """
        Convert generated ids back to words.

        A leading <start> and a trailing <end> are stripped; ids outside the
        vocabulary become <unk>.
        """
        ids = [int(t) for t in token_ids]
        if ids and ids[0] == self.start_id:
            ids = ids[1:]
        if ids and ids[-1] == self.end_id:
            ids = ids[:-1]
        return [self.itos[i] if 0 <= i < len(self.itos) else UNK_TOKEN for i in ids]

    # ------------------------------------------------------------------ #
    #  Persistence
    # ------------------------------------------------------------------ #

    def to_dict(self) -> Dict:
        self._require_built()
        return {
            "itos": list(self.itos),
            "freq_threshold": self.freq_threshold,
            "pad_id": self.pad_id,
            "start_id": self.start_id,
            "end_id": self.end_id,
            "unk_id": self.unk_id,
            "vocab_size": len(self.itos),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Vocabulary':
        vocab = cls(freq_threshold=data.get("freq_threshold", 1))
        vocab.itos = list(data["itos"])
        vocab.stoi = {tok: i for i, tok in enumerate(vocab.itos)}
        return vocab

    def save(self, path: str):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "wb") as f:
            pickle.dump(self.to_dict(), f)
        print(f"Saved vocab.pkl to {path}")

    @classmethod
    def load(cls, path: str) -> 'Vocabulary':
        with open(path, "rb") as f:
            return cls.from_dict(pickle.load(f))


def build_vocabulary(corpus: Iterable[str], freq_threshold: int = 5,
                     save_path: Optional[str] = None) -> Vocabulary:
    vocab = Vocabulary(freq_threshold).build(corpus)
    if save_path:
        vocab.save(save_path)
    return vocab
