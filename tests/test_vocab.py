from collections import Counter

import pytest
import torch

from captioner.preprocessing.vocab import (
    SPECIAL_TOKENS,
    UNK_TOKEN,
    Vocabulary,
    VocabularyNotBuiltError,
    tokenize,
)

CORPUS = [
    "A dog runs in the park.",
    "The dog jumps over a log!",
    "a cat, a dog and a bird",
    "Birds fly; dogs run.",
]


def test_dog_runs_scenario():
    vocab = Vocabulary(freq_threshold=2).build(["a dog runs", "a dog runs fast"])

    assert vocab.itos == SPECIAL_TOKENS + ["a", "dog", "runs"]
    assert "fast" not in vocab
    assert vocab.numericalize("a cat runs fast") == [
        vocab.stoi["a"], vocab.stoi[UNK_TOKEN], vocab.stoi["runs"], vocab.stoi[UNK_TOKEN]
    ]


def test_special_token_spelling():
    vocab = Vocabulary(freq_threshold=1).build(CORPUS)
    assert vocab.itos[:4] == ["<pad>", "<start>", "<end>", "<unk>"]


def test_reserved_ids():
    vocab = Vocabulary(freq_threshold=1).build(CORPUS)
    assert (vocab.pad_id, vocab.start_id, vocab.end_id, vocab.unk_id) == (0, 1, 2, 3)


@pytest.mark.parametrize("threshold", [1, 2, 3, 4, 10])
def test_threshold_partitions_tokens(threshold):
    vocab = Vocabulary(freq_threshold=threshold).build(CORPUS)
    counts = Counter(tok for sentence in CORPUS for tok in tokenize(sentence))

    for token, freq in counts.items():
        if freq >= threshold:
            assert vocab.itos[vocab.stoi[token]] == token
        else:
            assert vocab.numericalize(token) == [vocab.unk_id]


def test_ids_are_contiguous_and_unique():
    vocab = Vocabulary(freq_threshold=1).build(CORPUS)
    assert sorted(vocab.stoi.values()) == list(range(len(vocab)))
    assert len(set(vocab.itos)) == len(vocab.itos)


def test_ids_follow_first_seen_order():
    vocab = Vocabulary(freq_threshold=1).build(["zebra apple", "mango zebra"])
    assert vocab.itos[4:] == ["zebra", "apple", "mango"]


def test_tokenizer_drops_punctuation_and_case():
    assert tokenize("A Dog, runs! (fast)") == ["a", "dog", "runs", "fast"]
    assert tokenize("snake_case 42x") == ["snake", "case", "42x"]


def test_numericalize_is_deterministic():
    vocab = Vocabulary(freq_threshold=2).build(CORPUS)
    text = "the dog and the unicorn"
    first = vocab.numericalize(text)
    assert all(vocab.numericalize(text) == first for _ in range(5))


def test_empty_text():
    vocab = Vocabulary(freq_threshold=1).build(CORPUS)
    assert vocab.numericalize("") == []
    assert vocab.numericalize("?!,") == []
    assert vocab.encode("").tolist() == [vocab.start_id, vocab.end_id]


def test_encode_wraps_with_start_and_end():
    vocab = Vocabulary(freq_threshold=1).build(CORPUS)
    encoded = vocab.encode("a dog")
    assert encoded.dtype == torch.long
    assert encoded.tolist() == [1, vocab.stoi["a"], vocab.stoi["dog"], 2]


def test_decode_strips_sentinels():
    vocab = Vocabulary(freq_threshold=1).build(CORPUS)
    ids = vocab.encode("the dog runs").tolist()
    assert vocab.decode(ids) == ["the", "dog", "runs"]
    # No trailing <end> when generation hit the length cap
    assert vocab.decode(ids[:-1]) == ["the", "dog", "runs"]
    assert vocab.decode([vocab.start_id]) == []


def test_unbuilt_vocabulary_fails_fast():
    vocab = Vocabulary()
    assert not vocab.is_built
    with pytest.raises(VocabularyNotBuiltError, match="vocabulary not initialized"):
        vocab.numericalize("a dog")
    with pytest.raises(VocabularyNotBuiltError):
        _ = vocab.start_id


def test_invalid_threshold():
    with pytest.raises(ValueError):
        Vocabulary(freq_threshold=0)


def test_save_and_load(tmp_path):
    vocab = Vocabulary(freq_threshold=2).build(CORPUS)
    path = str(tmp_path / "vocab.pkl")
    vocab.save(path)

    loaded = Vocabulary.load(path)
    assert loaded.itos == vocab.itos
    assert loaded.stoi == vocab.stoi
    assert loaded.freq_threshold == 2
    assert loaded.numericalize("the dog and a cat") == vocab.numericalize("the dog and a cat")
