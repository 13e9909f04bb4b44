import os
import tempfile

import torch

from varstore import VarStore, nn


vs = VarStore("cpu")
root = vs.root()
bn1 = nn.batch_norm1d(root / "encoder" / "bn1", 8)
bn2 = nn.batch_norm2d(root / "encoder" / "bn2", 4)

xs = torch.randn(16, 8)
ys = bn1(xs, train=True)
print("bn1 output", tuple(ys.shape), "running mean moved:", bool(bn1.running_mean.abs().sum() > 0))
print("bn2 weight", tuple(bn2.ws.shape))

for name in vs.names():
    print(f"{name:32s} {tuple(vs.variables()[name].shape)}")

with tempfile.TemporaryDirectory() as tmp:
    target = os.path.join(tmp, "encoder.pt")
    vs.save(target)

    restored = VarStore("cpu")
    nn.batch_norm1d(restored.root() / "encoder" / "bn1", 8)
    missing = restored.load_partial(target)
    print("restored from checkpoint, absent names:", missing)

vs.freeze()
print("trainable after freeze:", [t.requires_grad for t in vs.trainable_variables()])
