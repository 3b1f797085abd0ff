"""
Field priority scoring

Shared by the lazy loading strategy (which fields to load eagerly) and the
pushdown strategy (which fields to hand to a data source with a field cap).
"""

from typing import Dict, Iterable, List, Optional

from projopt.core.context import FieldStatistics

# (substrings, bonus), checked in order; every matching group adds its bonus
NAME_PATTERN_BONUSES = (
    (("name", "title"), 800),
    (("status", "type"), 700),
    (("date", "time"), 600),
    (("count", "total"), 500),
    (("description", "content"), 300),
    (("image", "file"), 100),
)

ID_FIELD_BONUS = 1000
INDEXED_FIELD_BONUS = 500


def is_id_field(name: str) -> bool:
    """id, _id, *Id and *_id"""
    return name in ("id", "_id") or name.endswith("Id") or name.endswith("_id")


def score_field(
    name: str,
    stats: Optional[FieldStatistics] = None,
    prioritize_id_fields: bool = True,
) -> float:
    """
    Priority score of a field; higher means fetch it sooner

    Contributions, in order: access frequency (x10), inverse average size
    (1000 / max(1, size)), indexed bonus, then name-pattern bonuses.

    Args:
        name: Field name
        stats: Usage statistics, if known
        prioritize_id_fields: Give identifier-like fields the ID bonus

    Returns:
        Priority score
    """
    priority = 0.0

    if stats is not None:
        if stats.access_frequency:
            priority += stats.access_frequency * 10
        if stats.average_size:
            priority += 1000 / max(1, stats.average_size)
        if stats.indexed:
            priority += INDEXED_FIELD_BONUS

    if prioritize_id_fields and is_id_field(name):
        priority += ID_FIELD_BONUS

    for patterns, bonus in NAME_PATTERN_BONUSES:
        if any(p in name for p in patterns):
            priority += bonus

    return priority


def rank_fields(
    names: Iterable[str],
    statistics: Optional[Dict[str, FieldStatistics]] = None,
    prioritize_id_fields: bool = True,
) -> List[str]:
    """
    Sort field names by descending priority

    The sort is stable: ties keep their original order.
    """
    names = list(names)
    statistics = statistics or {}
    scores = {
        name: score_field(name, statistics.get(name), prioritize_id_fields) for name in names
    }
    return sorted(names, key=lambda name: -scores[name])
