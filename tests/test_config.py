import pytest
import torch

from varstore import StoreConfig, VarStore
from varstore.core.config import normalize_device_spec


def test_normalize_device_spec():
    assert normalize_device_spec("") == "cpu"
    assert normalize_device_spec("CPU") == "cpu"
    assert normalize_device_spec("gpu") == "cuda"
    assert normalize_device_spec("gpu:1") == "cuda:1"
    assert normalize_device_spec(torch.device("cpu")) == "cpu"
    assert normalize_device_spec("auto") in {"cpu", "cuda"}


def test_store_config_normalizes():
    config = StoreConfig(dtype="FP64", format="NPZ", seed="7").normalized()
    assert config.dtype == "fp64"
    assert config.torch_dtype == torch.float64
    assert config.format == "npz"
    assert config.seed == 7


@pytest.mark.parametrize("kwargs", [{"dtype": "int8"}, {"format": "pickle"}])
def test_store_config_rejects_unknown_values(kwargs):
    with pytest.raises(ValueError):
        StoreConfig(**kwargs).normalized()


def test_store_dtype_follows_config():
    vs = VarStore(config=StoreConfig(dtype="float64"))
    w = vs.root().zeros("w", [2])
    assert w.dtype == torch.float64
    assert vs.device == torch.device("cpu")
