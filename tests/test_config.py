import torch

from captioner.config import CaptionConfig


def test_round_trip_ignores_unknown_keys():
    config = CaptionConfig(embed_dim=64, learning_rate=1e-3)
    values = config.to_dict()
    values['removed_option'] = 1

    assert CaptionConfig.from_dict(values) == config
    assert CaptionConfig.from_dict(None) == CaptionConfig()


def test_updated_skips_unset_overrides():
    config = CaptionConfig().updated(batch_size=8, epochs=None)
    assert config.batch_size == 8
    assert config.epochs == CaptionConfig().epochs


def test_resolve_device():
    assert CaptionConfig(device='cpu').resolve_device() == torch.device('cpu')
    expected = 'cuda' if torch.cuda.is_available() else 'cpu'
    assert CaptionConfig(device='cuda').resolve_device().type == expected
