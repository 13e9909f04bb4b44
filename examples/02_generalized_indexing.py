import torch

from varstore import IndexOp, NewAxis, index, irange, parse_index

tensor = torch.arange(3 * 4 * 5).reshape(3, 4, 5)

# select, inclusive range, gather
out = index(tensor, 1, irange(0, 2), [4, 0])
print("index(1, 0..=2, [4, 0]) ->", tuple(out.shape))
print(out)

# insert a new axis in front of a narrowed axis
out = IndexOp(tensor)[NewAxis, 0:2]
print("[NewAxis, 0:2] ->", tuple(out.shape))

# textual form
terms = parse_index("2, ..=1, [0, 2, 4]")
print("parsed terms:", terms)
print("textual ->", tuple(IndexOp(tensor)["2, ..=1, [0, 2, 4]"].shape))
