import pytest
import torch

from varstore import VarStore
from varstore.nn import BatchNormConfig, batch_norm1d, batch_norm2d, batch_norm3d


def test_batch_norm_registers_variables():
    vs = VarStore("cpu")
    bn = batch_norm2d(vs.root() / "bn", 4)

    assert vs.names() == ["bn.bias", "bn.running_mean", "bn.running_var", "bn.weight"]
    trainable = vs.trainable_variables()
    assert len(trainable) == 2
    assert any(t is bn.ws for t in trainable)
    assert any(t is bn.bs for t in trainable)
    assert bn.running_mean.tolist() == [0.0] * 4
    assert bn.running_var.tolist() == [1.0] * 4


def test_batch_norm_without_affine_parameters():
    vs = VarStore("cpu")
    bn = batch_norm1d(vs.root(), 3, BatchNormConfig(ws_init=None, bs_init=None))

    assert bn.ws is None and bn.bs is None
    assert vs.trainable_variables() == []
    assert sorted(vs.names()) == ["running_mean", "running_var"]


def test_batch_norm_forward_updates_running_stats():
    torch.manual_seed(0)
    vs = VarStore("cpu")
    bn = batch_norm1d(vs.root(), 3)
    xs = torch.randn(16, 3) * 2.0 + 5.0

    ys = bn.forward_t(xs, train=True)

    assert ys.shape == xs.shape
    assert torch.allclose(ys.mean(dim=0), torch.zeros(3), atol=1e-5)
    assert float(bn.running_mean.mean()) > 0.0
    assert torch.equal(vs.variables()["running_mean"], bn.running_mean)


def test_batch_norm_eval_uses_running_stats():
    vs = VarStore("cpu")
    bn = batch_norm3d(vs.root(), 2)
    xs = torch.ones(1, 2, 2, 2, 2)
    ys = bn(xs)
    assert torch.allclose(ys, xs / (1.0 + 1e-5) ** 0.5)


@pytest.mark.parametrize(
    "factory, shape",
    [(batch_norm1d, (2, 3, 4, 5)), (batch_norm2d, (2, 3, 4)), (batch_norm3d, (2, 3, 4, 5))],
)
def test_batch_norm_rejects_wrong_rank(factory, shape):
    vs = VarStore("cpu")
    bn = factory(vs.root(), 3)
    with pytest.raises(ValueError):
        bn.forward_t(torch.zeros(shape), train=False)


def test_batch_norm_state_survives_save_and_load(tmp_path):
    vs = VarStore("cpu")
    bn = batch_norm1d(vs.root() / "bn", 2)
    bn.forward_t(torch.tensor([[0.0, 10.0], [2.0, 14.0]]), train=True)
    path = tmp_path / "bn.pt"
    vs.save(path)

    fresh = VarStore("cpu")
    restored = batch_norm1d(fresh.root() / "bn", 2)
    fresh.load(path)
    assert torch.equal(restored.running_mean, bn.running_mean)
    assert torch.equal(restored.running_var, bn.running_var)
