import pytest
import torch

from captioner.models.dataloader import CaptionDataset, build_loaders
from captioner.models.encoder import build_transform
from captioner.preprocessing.captions import load_captions, materialize, split_by_image


def test_item_returns_image_and_wrapped_caption(flickr_dir, vocab):
    captions_path, img_dir = flickr_dir
    mapping = load_captions(captions_path)
    dataset = CaptionDataset.from_mapping(mapping, img_dir, vocab, build_transform(32))

    assert len(dataset) == 7
    image, caption = dataset[0]
    assert image.shape == (3, 32, 32)
    assert caption.tolist() == vocab.encode("A dog runs on the grass .").tolist()
    assert caption[0] == vocab.start_id and caption[-1] == vocab.end_id


def test_index_is_stable(flickr_dir, vocab):
    captions_path, img_dir = flickr_dir
    mapping = load_captions(captions_path)
    dataset = CaptionDataset.from_mapping(mapping, img_dir, vocab, build_transform(32))

    assert dataset.samples == materialize(mapping)
    for i in range(len(dataset)):
        assert torch.equal(dataset[i][1], dataset[i][1])
        assert torch.equal(dataset[i][1], vocab.encode(dataset.samples[i][1]))


def test_missing_image_propagates(flickr_dir, vocab):
    _, img_dir = flickr_dir
    dataset = CaptionDataset([("nope.jpg", "a dog")], img_dir, vocab, build_transform(32))
    with pytest.raises(FileNotFoundError):
        dataset[0]


def test_build_loaders(flickr_dir, vocab, config):
    captions_path, img_dir = flickr_dir
    train_mapping, val_mapping = split_by_image(load_captions(captions_path), config.val_ratio, config.seed)
    train_loader, val_loader = build_loaders(train_mapping, val_mapping, img_dir, vocab, config)

    assert len(train_loader.dataset) + len(val_loader.dataset) == 7
    images, captions, lengths = next(iter(val_loader))
    assert images.shape[1:] == (3, 32, 32)
    assert captions.shape == (images.shape[0], int(lengths.max()))
    assert (captions[:, 0] == vocab.start_id).all()


def test_validation_batches_do_not_depend_on_worker_count(flickr_dir, vocab, config):
    captions_path, img_dir = flickr_dir
    train_mapping, val_mapping = split_by_image(load_captions(captions_path), config.val_ratio, config.seed)

    _, serial = build_loaders(train_mapping, val_mapping, img_dir, vocab, config)
    _, parallel = build_loaders(train_mapping, val_mapping, img_dir, vocab, config.updated(num_workers=2))

    serial_batches = list(serial)
    parallel_batches = list(parallel)
    assert len(serial_batches) == len(parallel_batches)
    for a, b in zip(serial_batches, parallel_batches):
        for x, y in zip(a, b):
            assert torch.equal(x, y)
