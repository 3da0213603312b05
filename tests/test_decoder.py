import pytest
import torch

from captioner.models.decoder import (
    CaptioningModel,
    DecodePhase,
    DecoderState,
    LSTMDecoder,
    caption_loss,
)
from captioner.models.encoder import FeatureExtractor
from tests.conftest import TINY_FEATURE_DIM, tiny_backbone


def _captions(vocab):
    return torch.stack([
        vocab.encode("a dog runs on the grass"),
        vocab.encode("a cat sits on a mat"),
    ])


def test_forward_shape(model, vocab):
    captions = _captions(vocab)
    images = torch.randn(2, 3, 32, 32)
    logits = model(images, captions)
    assert logits.shape == (2, captions.shape[1], len(vocab))


def test_step_matches_teacher_forced_forward(model, vocab):
    """Step-wise decoding with carried state reproduces the full-sequence outputs."""
    model.eval()
    captions = _captions(vocab)
    images = torch.randn(2, 3, 32, 32)

    with torch.no_grad():
        full = model(images, captions)
        image_embeddings = model.extractor.embed(images)

        state = DecoderState.initial()
        logits, state = model.decoder.step(state, captions[:, 0], image_embeddings)
        assert torch.allclose(logits, full[:, 1], atol=1e-5)

        for t in range(1, captions.shape[1] - 1):
            logits, state = model.decoder.step(state, captions[:, t])
            assert torch.allclose(logits, full[:, t + 1], atol=1e-5)


def test_state_transitions(model, vocab):
    model.eval()
    state = DecoderState.initial()
    assert state.phase is DecodePhase.AWAIT_FIRST_STEP
    assert state.hidden is None

    image_embedding = model.extractor.embed(torch.randn(1, 3, 32, 32))
    start = torch.tensor([vocab.start_id])
    _, first = model.decoder.step(state, start, image_embedding)
    assert first.phase is DecodePhase.STREAMING
    h, c = first.hidden
    assert h.shape == (1, 1, model.decoder.hidden_dim)

    _, second = model.decoder.step(first, torch.tensor([5]))
    assert second.phase is DecodePhase.STREAMING
    assert second is not first
    # Constant-size carry
    assert second.hidden[0].shape == h.shape


def test_first_step_needs_image(model, vocab):
    with pytest.raises(ValueError):
        model.decoder.step(DecoderState.initial(), torch.tensor([vocab.start_id]))


def test_frozen_backbone_gets_no_gradient(model, vocab):
    model.train()
    captions = _captions(vocab)
    logits = model(torch.randn(2, 3, 32, 32), captions)
    caption_loss(logits, captions, torch.nn.CrossEntropyLoss(ignore_index=vocab.pad_id)).backward()

    assert model.extractor.trainable is False
    assert all(p.grad is None for p in model.extractor.backbone.parameters())
    assert model.extractor.adapter.weight.grad is not None
    assert model.decoder.embedding.weight.grad is not None


def test_trainable_backbone_gets_gradient():
    extractor = FeatureExtractor(embed_dim=4, trainable=True, backbone=tiny_backbone(),
                                 feature_dim=TINY_FEATURE_DIM, dropout=0.0)
    extractor.embed(torch.randn(2, 3, 16, 16)).sum().backward()
    assert all(p.grad is not None for p in extractor.backbone.parameters())


def test_frozen_backbone_stays_in_eval_mode():
    extractor = FeatureExtractor(embed_dim=4, backbone=tiny_backbone(), feature_dim=TINY_FEATURE_DIM)
    extractor.train()
    assert extractor.training
    assert not extractor.backbone.training

    extractor.trainable = True
    extractor.train()
    assert extractor.backbone.training


def test_pad_embedding_is_zero():
    decoder = LSTMDecoder(vocab_size=10, embed_dim=4, hidden_dim=6, pad_id=0)
    assert torch.count_nonzero(decoder.embedding.weight[0]) == 0


def test_count_parameters_excludes_frozen_backbone(model):
    backbone = sum(p.numel() for p in model.extractor.backbone.parameters())
    total = sum(p.numel() for p in model.parameters())
    assert isinstance(model, CaptioningModel)
    assert model.count_parameters() == total - backbone
