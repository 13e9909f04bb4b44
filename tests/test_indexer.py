import numpy as np
import pytest
import torch

from varstore import (
    Excluded,
    Included,
    IndexArityError,
    IndexOp,
    IndexSelect,
    InsertNewAxis,
    Narrow,
    NewAxis,
    Select,
    Unbounded,
    UnsupportedIndexKind,
    ViewOperationError,
    compile_index,
    evaluate_index,
    index,
    irange,
)
from varstore.core.indexer import resolve_narrow


def _arange(*shape):
    return torch.arange(int(np.prod(shape)), dtype=torch.float32).reshape(*shape)


def test_compile_index_conversions():
    terms = compile_index(2, None, slice(0, 2), NewAxis, irange(1, 3), slice(None))

    assert terms[0] == Select(2)
    assert terms[1] == InsertNewAxis()
    assert terms[2] == Narrow(Included(0), Excluded(2))
    assert terms[3] == InsertNewAxis()
    assert terms[4] == Narrow(Included(1), Included(3))
    assert terms[5] == Narrow(Unbounded(), Unbounded())


def test_compile_index_materializes_sequences():
    (term,) = compile_index([0, 2, 2])
    assert isinstance(term, IndexSelect)
    assert term.index.dtype == torch.int64
    assert term.index.tolist() == [0, 2, 2]

    (term,) = compile_index(np.array([1, 0], dtype=np.int32))
    assert term.index.tolist() == [1, 0]


def test_compile_index_accepts_signed_integer_tensors():
    for dtype in (torch.int8, torch.int16, torch.int32, torch.int64):
        (term,) = compile_index(torch.tensor([1, 0], dtype=dtype))
        assert isinstance(term, IndexSelect)


def test_compile_index_zero_dim_tensor_selects():
    assert compile_index(torch.tensor(3)) == [Select(3)]


@pytest.mark.parametrize(
    "term",
    [
        torch.zeros(2, 2, dtype=torch.int64),
        torch.tensor([0.0, 1.0]),
        torch.tensor([0, 1], dtype=torch.uint8),
        np.array([0, 1], dtype=np.uint8),
        [[0, 1], [1, 0]],
        [0, "a"],
        True,
        slice(0, 4, 2),
        "0",
        1.5,
    ],
)
def test_compile_index_rejects_unsupported_kinds(term):
    with pytest.raises(UnsupportedIndexKind):
        compile_index(term)


def test_compile_index_arity_bounds():
    with pytest.raises(IndexArityError):
        compile_index()
    with pytest.raises(IndexArityError):
        compile_index(0, 0, 0, 0, 0, 0, 0)
    assert len(compile_index(*([slice(None)] * 6))) == 6


def test_two_dimensional_index_fails_before_any_view(monkeypatch):
    tensor = _arange(3, 4)

    def _fail(*args, **kwargs):  # pragma: no cover - must not run
        raise AssertionError("view primitive executed")

    monkeypatch.setattr(torch.Tensor, "index_select", _fail)
    with pytest.raises(UnsupportedIndexKind):
        index(tensor, slice(None), torch.zeros(2, 2, dtype=torch.int64))


def test_select_new_axis_narrow_shape():
    tensor = _arange(3, 4, 1)
    result = index(tensor, 2, NewAxis, slice(0, 2))

    assert list(result.shape) == [1, 2, 1]
    assert torch.equal(result, tensor[2, None, 0:2])


def test_narrow_after_new_axis_addresses_the_next_original_axis():
    tensor = _arange(3, 1, 4)

    assert list(index(tensor, 2, NewAxis, slice(0, 1)).shape) == [1, 1, 4]
    with pytest.raises(ViewOperationError) as excinfo:
        index(tensor, 2, NewAxis, slice(0, 2))
    assert excinfo.value.term_index == 2


def test_select_keeps_cursor():
    tensor = _arange(2, 3, 4)
    result = index(tensor, 1, 2)

    assert list(result.shape) == [4]
    assert torch.equal(result, tensor[1, 2])


def test_full_range_advances_cursor():
    tensor = _arange(2, 3)
    assert torch.equal(index(tensor, slice(None), 0), tensor[:, 0])


@pytest.mark.parametrize(
    "terms, expected",
    [
        ((slice(None), 1), lambda t: t[:, 1]),
        ((slice(1, None), [0, 2]), lambda t: t[1:, [0, 2]]),
        ((None, 0), lambda t: t[None, 0]),
        ((irange(0, 1), slice(None), -1), lambda t: t[0:2, :, -1]),
        ((slice(-2, None),), lambda t: t[-2:]),
        ((0, slice(None, -1), None), lambda t: t[0, :-1, None]),
        ((1, torch.tensor([3, 0], dtype=torch.int32), 2, slice(1, 4)), lambda t: t[1, [3, 0], 2, 1:4]),
        ((slice(None), slice(None), slice(None), slice(None)), lambda t: t),
    ],
)
def test_matches_native_indexing(terms, expected):
    tensor = _arange(2, 4, 4, 5)
    result = index(tensor, *terms)
    assert torch.equal(result, expected(tensor))


def test_bound_kinds_resolve_to_half_open_ranges():
    assert resolve_narrow(Narrow(Included(1), Excluded(3)), 5) == (1, 3)
    assert resolve_narrow(Narrow(Included(1), Included(3)), 5) == (1, 4)
    assert resolve_narrow(Narrow(Excluded(1), Included(3)), 5) == (2, 4)
    assert resolve_narrow(Narrow(Excluded(1), Excluded(3)), 5) == (2, 3)
    assert resolve_narrow(Narrow(Unbounded(), Included(2)), 5) == (0, 3)
    assert resolve_narrow(Narrow(Excluded(0), Unbounded()), 5) == (1, 5)
    assert resolve_narrow(Narrow(Included(-2), Unbounded()), 5) == (3, 5)


def test_excluded_lower_bound():
    tensor = _arange(2, 3)
    result = index(tensor, slice(None), Narrow(Excluded(0), Included(2)))
    assert torch.equal(result, tensor[:, 1:3])


def test_out_of_range_narrow_is_not_clamped():
    tensor = _arange(4)
    with pytest.raises(ViewOperationError) as excinfo:
        index(tensor, irange(0, 10))
    assert excinfo.value.term_index == 0
    assert isinstance(excinfo.value.__cause__, (RuntimeError, IndexError))


def test_out_of_range_select_reports_term_position():
    tensor = _arange(2, 3)
    with pytest.raises(ViewOperationError) as excinfo:
        index(tensor, 0, 7)
    assert excinfo.value.term_index == 1


def test_too_many_terms_for_rank():
    tensor = _arange(2, 3)
    with pytest.raises(IndexArityError) as excinfo:
        evaluate_index(tensor, compile_index(0, 0, 0))
    assert excinfo.value.rank == 2
    assert "dimension 2" in str(excinfo.value)


def test_results_are_views():
    tensor = _arange(3, 4)
    view = index(tensor, 1, slice(0, 2))
    view.fill_(-1.0)
    assert tensor[1, :2].tolist() == [-1.0, -1.0]
    assert tensor[1, 2].item() == 6.0


def test_index_op_subscription():
    tensor = _arange(3, 4, 5)
    op = IndexOp(tensor)

    assert torch.equal(op[0, None, 1:3], tensor[0, None, 1:3])
    assert torch.equal(op[1], tensor[1])
    assert torch.equal(op[[2, 0]], tensor[[2, 0]])
    assert torch.equal(op["0, newaxis, 1..3"], tensor[0, None, 1:3])
    assert torch.equal(op["..=1, [3, 0]"], tensor[:2, [3, 0]])


@pytest.mark.parametrize("term", [slice(-5, -4), irange(-6, -5), slice(-5, None), slice(3, 1)])
def test_negative_bounds_before_axis_start_fail(term):
    tensor = _arange(4)
    with pytest.raises(ViewOperationError) as excinfo:
        index(tensor, term)
    assert excinfo.value.term_index == 0


def test_out_of_bounds_narrow_reports_later_term_position():
    tensor = _arange(2, 4)
    with pytest.raises(ViewOperationError) as excinfo:
        index(tensor, 0, slice(-5, -1))
    assert excinfo.value.term_index == 1


@pytest.mark.parametrize("term", [torch.tensor(1.0), torch.tensor(True), torch.tensor(1, dtype=torch.uint8)])
def test_non_integer_scalar_tensor_reports_its_kind(term):
    with pytest.raises(UnsupportedIndexKind, match="signed integer dtype"):
        compile_index(term)
