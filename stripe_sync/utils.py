from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar


T = TypeVar('T')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_id(value: Any) -> Optional[str]:
    """Reduce a reference to its bare ID.

    Stripe returns references either as an ID string or, when expanded, as
    the full object.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get('id')
        return str(value) if value else None
    return str(value)


def get_unique_ids(entries: List[Dict[str, Any]], key: str) -> List[str]:
    """Extract unique IDs from a list of entries.

    Args:
        entries: List of entity dictionaries
        key: Key to extract IDs from

    Returns:
        List of unique IDs as strings, in first-seen order
    """
    unique: Dict[str, None] = {}
    for entry in entries:
        value = as_id(entry.get(key))
        if value:
            unique[value] = None
    return list(unique)


def chunk_array(array: Sequence[T], chunk_size: int) -> List[Sequence[T]]:
    """Split an array into chunks.

    Args:
        array: Array to split
        chunk_size: Size of each chunk

    Returns:
        List of chunks
    """
    result = []
    for i in range(0, len(array), chunk_size):
        result.append(array[i:i + chunk_size])
    return result


def run_concurrently(tasks: Sequence[Callable[[], T]]) -> List[T]:
    """Run every task to completion, one thread per task.

    All tasks finish before the first failure (in task order) is re-raised,
    so a failing task never cancels its siblings.
    """
    if not tasks:
        return []
    if len(tasks) == 1:
        return [tasks[0]()]

    with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
        futures = [executor.submit(task) for task in tasks]

    results = []
    for future in futures:
        results.append(future.result())
    return results
