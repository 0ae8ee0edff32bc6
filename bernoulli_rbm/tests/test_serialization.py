"""Tests for parameter snapshots."""
import json
import logging
import time

import pytest
import torch

from bernoulli_rbm.src.errors import ConfigurationError, SnapshotDecodeError
from bernoulli_rbm.src.model import BernoulliRBM, TrainingMethod
from bernoulli_rbm.src.serialization import (
    Snapshot,
    decode_snapshot,
    dumps_snapshot,
    encode_snapshot,
    load_snapshot,
    loads_snapshot,
    save_snapshot,
)
from bernoulli_rbm.src.train import train_rbm
from bernoulli_rbm.src.utils import make_generator


@pytest.fixture
def trained_rbm():
    rbm = BernoulliRBM(6, 4, learning_rate=0.1, batch_size=4, training_method="equilibrium",
                       generator=make_generator(5))
    with torch.no_grad():
        rbm.W.add_(torch.randn(4, 6, generator=make_generator(6), dtype=torch.float64) / 3)
        rbm.v_bias.copy_(torch.linspace(-1, 1, 6, dtype=torch.float64))
        rbm.h_bias.copy_(torch.tensor([0.1, 1 / 3, -2 / 7, 1e-17], dtype=torch.float64))
    return rbm


def assert_same_parameters(a, b):
    assert (a.n_visible, a.n_hidden) == (b.n_visible, b.n_hidden)
    assert torch.equal(a.W, b.W)
    assert torch.equal(a.h_bias, b.h_bias)
    assert torch.equal(a.v_bias, b.v_bias)


class TestRoundTrip:
    """Tests for lossless encode/decode."""

    def test_encode_decode_is_exact(self, trained_rbm):
        """decode(encode(model)) reproduces every parameter bit for bit."""
        restored = decode_snapshot(encode_snapshot(trained_rbm))
        assert_same_parameters(trained_rbm, restored)
        assert restored.training_method == TrainingMethod.EQUILIBRIUM

    def test_json_round_trip_is_exact(self, trained_rbm):
        """The JSON text form is lossless too."""
        restored = loads_snapshot(dumps_snapshot(trained_rbm))
        assert_same_parameters(trained_rbm, restored)

    def test_round_trip_after_training(self, small_rbm, binary_samples):
        """A model fresh out of training survives the round trip."""
        train_rbm(small_rbm, binary_samples, epochs=2)
        assert_same_parameters(small_rbm, loads_snapshot(dumps_snapshot(small_rbm)))

    def test_snapshot_fields(self, trained_rbm):
        """The JSON record has exactly the documented fields."""
        before = int(time.time() * 1000)
        record = json.loads(dumps_snapshot(trained_rbm))
        assert set(record) == {"visible_size", "hidden_size", "weights", "hidden_bias",
                               "visible_bias", "training_method", "timestamp"}
        assert record["training_method"] == "equilibrium"
        assert len(record["weights"]) == 4 and len(record["weights"][0]) == 6
        assert record["timestamp"] >= before

    def test_explicit_timestamp(self, trained_rbm):
        assert encode_snapshot(trained_rbm, timestamp=1234).timestamp == 1234

    def test_model_options_forwarded(self, trained_rbm):
        """Hyperparameters outside the snapshot can be supplied on decode."""
        restored = decode_snapshot(encode_snapshot(trained_rbm), learning_rate=0.2, batch_size=8)
        assert restored.learning_rate == 0.2
        assert restored.batch_size == 8

    def test_training_method_cannot_be_overridden(self, trained_rbm):
        """The method tag always comes from the snapshot."""
        with pytest.raises(ConfigurationError):
            decode_snapshot(encode_snapshot(trained_rbm), training_method="contrastive-divergence")


class TestDecodeErrors:
    """Tests for malformed snapshots."""

    @pytest.fixture
    def record(self, trained_rbm):
        return encode_snapshot(trained_rbm).model_dump(mode="json")

    def test_missing_field(self, record):
        del record["visible_bias"]
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)

    def test_wrong_row_count(self, record):
        """Weights must have hidden_size rows."""
        record["weights"] = record["weights"][:-1]
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)

    def test_ragged_weights(self, record):
        """Every weight row must have visible_size values."""
        record["weights"][2] = record["weights"][2][:-1]
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)

    def test_bias_length_mismatch(self, record):
        record["hidden_bias"].append(0.0)
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)

    def test_non_finite_values(self, record):
        record["weights"][0][0] = float("nan")
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)

    def test_unknown_training_method(self, record):
        record["training_method"] = "backprop"
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)

    @pytest.mark.parametrize("field, value", [
        ("visible_size", "6"),
        ("hidden_size", "4"),
        ("timestamp", "123"),
        ("weights", [["0.1"] * 6] * 4),
        ("hidden_bias", ["0", "0", "0", "0"]),
        ("visible_bias", [True] * 6),
    ])
    def test_numbers_must_be_numbers(self, record, field, value):
        """Strings and booleans are not coerced into sizes or parameters."""
        record[field] = value
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot(record)
        with pytest.raises(SnapshotDecodeError):
            loads_snapshot(json.dumps(record))

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2, 3]", '{"visible_size": 2}'])
    def test_invalid_text(self, text):
        with pytest.raises(SnapshotDecodeError):
            loads_snapshot(text)

    def test_snapshot_model_validates_directly(self, record):
        """Snapshot itself refuses inconsistent dimensions."""
        record["visible_size"] = 7
        with pytest.raises(ValueError):
            Snapshot.model_validate(record)


class TestFiles:
    """Tests for saving and loading snapshot files."""

    def test_save_and_load(self, trained_rbm, tmp_path):
        path = tmp_path / "models" / "snapshot.json"
        assert save_snapshot(trained_rbm, str(path))
        assert path.exists()
        assert_same_parameters(trained_rbm, load_snapshot(str(path)))

    def test_load_missing_file_returns_none(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR):
            assert load_snapshot(str(tmp_path / "missing.json")) is None
        assert "Failed to load snapshot" in caplog.text

    def test_load_corrupt_file_returns_none(self, tmp_path, caplog):
        path = tmp_path / "corrupt.json"
        path.write_text('{"visible_size": 3, "hidden_size": 2, "weights": [[1, 2]]}')
        with caplog.at_level(logging.ERROR):
            assert load_snapshot(str(path)) is None
        assert "Failed to load snapshot" in caplog.text

    def test_load_binary_file_returns_none(self, tmp_path, caplog):
        """Bytes that are not UTF-8 are reported like any other bad snapshot."""
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        with caplog.at_level(logging.ERROR):
            assert load_snapshot(str(path)) is None
        assert "Failed to load snapshot" in caplog.text

    def test_save_to_unwritable_path_returns_false(self, trained_rbm, tmp_path):
        """A directory in place of the file makes the save fail cleanly."""
        assert not save_snapshot(trained_rbm, str(tmp_path))
