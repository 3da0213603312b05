"""
CNN + LSTM Image Captioning Model
=================================
Architecture:
    - FeatureExtractor: frozen ResNet-50 + linear adapter -> embed_dim vector
    - LSTM decoder: the image embedding is the first time step, the caption
      tokens (teacher forced) follow
    - Linear projection of every hidden state to vocabulary logits

Alignment (L = caption length including <start>/<end>):
    input steps : [img, w0=<start>, w1, ..., w(L-2)]      -> L steps
    logits[:, t] predicts captions[:, t] for t = 1..L-1
    logits[:, 0] (image only) is not scored
"""

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

import torch
import torch.nn as nn

from ..config import CaptionConfig
from .encoder import FeatureExtractor

Hidden = Tuple[torch.Tensor, torch.Tensor]


# =============================================================================
# SECTION A: Decoder state machine
# =============================================================================

class DecodePhase(enum.Enum):
    AWAIT_FIRST_STEP = "await_first_step"
    STREAMING = "streaming"


@dataclass(frozen=True)
class DecoderState:
    """
    Carried LSTM state for step-wise decoding.

    AWAIT_FIRST_STEP has no hidden state yet. Every call to
    LSTMDecoder.step consumes a state and returns a new one; the old state
    must not be reused.
    """
    phase: DecodePhase = DecodePhase.AWAIT_FIRST_STEP
    hidden: Optional[Hidden] = None

    @classmethod
    def initial(cls) -> 'DecoderState':
        return cls()


# =============================================================================
# SECTION B: LSTM Decoder
# =============================================================================

class LSTMDecoder(nn.Module):
    """
    LSTM decoder for caption generation.

    Args:
        vocab_size: Vocabulary size
        embed_dim: Word embedding dimension (also the image embedding size)
        hidden_dim: LSTM hidden dimension
        num_layers: Number of LSTM layers
        dropout: Dropout rate on word embeddings
        pad_id: Padding id (its embedding row is kept at zero)
    """

    def __init__(
        self,
        vocab_size: int,
        embed_dim: int = 256,
        hidden_dim: int = 256,
        num_layers: int = 1,
        dropout: float = 0.5,
        pad_id: int = 0
    ):
        super().__init__()

        self.vocab_size = vocab_size
        self.embed_dim = embed_dim
        self.hidden_dim = hidden_dim
        self.num_layers = num_layers

        self.embedding = nn.Embedding(vocab_size, embed_dim, padding_idx=pad_id)
        self.lstm = nn.LSTM(
            input_size=embed_dim,
            hidden_size=hidden_dim,
            num_layers=num_layers,
            batch_first=True,
            dropout=dropout if num_layers > 1 else 0.0
        )
        self.output_layer = nn.Linear(hidden_dim, vocab_size)
        self.dropout = nn.Dropout(dropout)

    def forward(self, image_embeddings: torch.Tensor, captions: torch.Tensor) -> torch.Tensor:
        """
        Teacher-forced pass over a whole padded batch.

        Args:
            image_embeddings: (batch_size, embed_dim)
            captions: (batch_size, L) token ids, captions[:, 0] == <start>

        Returns:
            logits: (batch_size, L, vocab_size)
        """
        word_embeds = self.dropout(self.embedding(captions[:, :-1]))       # (B, L-1, E)
        inputs = torch.cat([image_embeddings.unsqueeze(1), word_embeds], dim=1)  # (B, L, E)
        lstm_out, _ = self.lstm(inputs)
        return self.output_layer(lstm_out)

    def step(
        self,
        state: DecoderState,
        tokens: torch.Tensor,
        image_embeddings: Optional[torch.Tensor] = None
    ) -> Tuple[torch.Tensor, DecoderState]:
        """
        One decoding step.

        Args:
            state: Current decoder state (consumed)
            tokens: (batch_size,) most recent token ids (<start> on the first step)
            image_embeddings: (batch_size, embed_dim), required on the first step

        Returns:
            logits: (batch_size, vocab_size) for the next token
            new_state: STREAMING state carrying the updated (h, c)
        """
        word_embed = self.dropout(self.embedding(tokens)).unsqueeze(1)      # (B, 1, E)

        if state.phase is DecodePhase.AWAIT_FIRST_STEP:
            if image_embeddings is None:
                raise ValueError("image_embeddings are required on the first decoding step")
            inputs = torch.cat([image_embeddings.unsqueeze(1), word_embed], dim=1)  # (B, 2, E)
            lstm_out, hidden = self.lstm(inputs)
        else:
            lstm_out, hidden = self.lstm(word_embed, state.hidden)

        logits = self.output_layer(lstm_out[:, -1])
        return logits, DecoderState(DecodePhase.STREAMING, hidden)


# =============================================================================
# SECTION C: Full Captioning Model
# =============================================================================

class CaptioningModel(nn.Module):
    """
    Feature extractor + LSTM decoder.

    Args:
        extractor: Anything with embed(images) -> (B, embed_dim) and a `trainable` flag
        decoder: LSTMDecoder
    """

    def __init__(self, extractor: FeatureExtractor, decoder: LSTMDecoder):
        super().__init__()
        self.extractor = extractor
        self.decoder = decoder

    def forward(self, images: torch.Tensor, captions: torch.Tensor) -> torch.Tensor:
        """
        Args:
            images: (B, 3, H, W)
            captions: (B, L) padded caption ids

        Returns:
            logits: (B, L, vocab_size)
        """
        image_embeddings = self.extractor.embed(images)
        return self.decoder(image_embeddings, captions)

    def count_parameters(self) -> int:
        """Count trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)


def caption_loss(logits: torch.Tensor, captions: torch.Tensor, criterion: nn.Module) -> torch.Tensor:
    """
    Token-level loss with the one-step shift applied.

    logits[:, 1:] is scored against captions[:, 1:]; `criterion` is expected
    to ignore the pad id so padded positions do not contribute.
    """
    vocab_size = logits.size(-1)
    return criterion(
        logits[:, 1:].reshape(-1, vocab_size),
        captions[:, 1:].reshape(-1)
    )


def create_model(
    vocab_size: int,
    config: Optional[CaptionConfig] = None,
    pad_id: int = 0,
    backbone: Optional[nn.Module] = None,
    feature_dim: int = 2048,
    pretrained: Optional[bool] = None
) -> CaptioningModel:
    """
    Factory function to create the captioning model from a config.

    Args:
        vocab_size: Size of vocabulary
        config: CaptionConfig (defaults if omitted)
        pad_id: Padding id of the vocabulary
        backbone: Optional replacement extractor backbone
        feature_dim: Output size of the backbone
        pretrained: Overrides config.pretrained_extractor (False when
            weights come from a checkpoint anyway)
    """
    config = config or CaptionConfig()
    if pretrained is None:
        pretrained = config.pretrained_extractor

    extractor = FeatureExtractor(
        embed_dim=config.embed_dim,
        trainable=config.train_extractor,
        pretrained=pretrained,
        backbone=backbone,
        feature_dim=feature_dim,
        dropout=config.dropout
    )
    decoder = LSTMDecoder(
        vocab_size=vocab_size,
        embed_dim=config.embed_dim,
        hidden_dim=config.hidden_dim,
        num_layers=config.num_layers,
        dropout=config.dropout,
        pad_id=pad_id
    )
    model = CaptioningModel(extractor, decoder)

    print(f"\n{'=' * 60}")
    print("CNN-LSTM Captioner Initialized")
    print(f"{'=' * 60}")
    print(f"  Vocab size: {vocab_size}")
    print(f"  Embed dim: {config.embed_dim}")
    print(f"  Hidden dim: {config.hidden_dim}")
    print(f"  LSTM layers: {config.num_layers}")
    print(f"  Dropout: {config.dropout}")
    print(f"  Extractor trainable: {config.train_extractor}")
    print(f"  Trainable parameters: {model.count_parameters():,}")
    print(f"{'=' * 60}\n")

    return model
