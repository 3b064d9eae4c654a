from types import SimpleNamespace

from models import TransactionType
from ordering import sort_siblings, swap_siblings


def _items(*specs):
    return [
        SimpleNamespace(id=item_id, type=txn_type, order=order)
        for item_id, txn_type, order in specs
    ]


def _expense_items():
    return _items(
        (1, TransactionType.expense, 0),
        (2, TransactionType.expense, 1),
        (3, TransactionType.expense, 2),
    )


def test_swap_exchanges_positions_not_shift():
    swapped = swap_siblings(_expense_items(), 1, 3)
    assert [item.id for item in swapped] == [3, 2, 1]


def test_swap_with_itself_keeps_order():
    swapped = swap_siblings(_expense_items(), 2, 2)
    assert [item.id for item in swapped] == [1, 2, 3]


def test_swapping_twice_restores_order():
    items = _expense_items()
    first = swap_siblings(items, 1, 3)
    for index, item in enumerate(first):
        item.order = index
    second = swap_siblings(items, 1, 3)
    assert [item.id for item in second] == [1, 2, 3]


def test_cross_partition_swap_is_rejected():
    items = _expense_items() + _items((4, TransactionType.income, 0))
    assert swap_siblings(items, 1, 4) is None


def test_unknown_id_is_rejected():
    assert swap_siblings(_expense_items(), 1, 99) is None


def test_swap_returns_only_the_dragged_partition():
    items = _items(
        (1, TransactionType.expense, 0),
        (4, TransactionType.income, 0),
        (2, TransactionType.expense, 1),
    )
    swapped = swap_siblings(items, 2, 1)
    assert [item.id for item in swapped] == [2, 1]


def test_sort_siblings_is_stable_for_duplicate_orders():
    items = _items(
        (1, TransactionType.expense, 1),
        (2, TransactionType.expense, 0),
        (3, TransactionType.expense, 1),
        (4, TransactionType.expense, None),
    )
    assert [item.id for item in sort_siblings(items)] == [2, 4, 1, 3]
