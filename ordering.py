from typing import Any, Optional, Sequence, TypeVar

T = TypeVar("T")


def sort_siblings(items: Sequence[T]) -> list[T]:
    # Stable: duplicate or missing order values keep their given position.
    return sorted(items, key=lambda item: getattr(item, "order", None) or 0)


def swap_siblings(
    items: Sequence[T], dragged_id: Any, target_id: Any
) -> Optional[list[T]]:
    """Swap the dragged sibling with the target inside their type partition.

    ``items`` may mix both partitions; only members sharing the dragged
    item's ``type`` are returned, in their new order, so a caller can assign
    ``order = index``.  Returns ``None`` when either id is unknown or the two
    belong to different partitions.
    """
    by_id = {item.id: item for item in items}
    dragged = by_id.get(dragged_id)
    target = by_id.get(target_id)
    if dragged is None or target is None:
        return None
    if dragged.type != target.type:
        return None

    partition = sort_siblings([item for item in items if item.type == dragged.type])
    if dragged_id == target_id:
        return partition

    i = next(idx for idx, item in enumerate(partition) if item.id == dragged_id)
    j = next(idx for idx, item in enumerate(partition) if item.id == target_id)
    partition[i], partition[j] = partition[j], partition[i]
    return partition
