"""Query group consolidator.

Collapses the legs of every macro-route into as few (origins x destinations)
availability queries as possible. A query covers every combination of its
keys and dests, so the product of the two set sizes is capped.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from awardroute.config import settings

logger = logging.getLogger(__name__)


@dataclass
class QueryGroup:
    keys: set[str]
    dests: set[str]

    @property
    def size(self) -> int:
        return len(self.keys) * len(self.dests)

    @property
    def identifier(self) -> str:
        return f"{'/'.join(sorted(self.keys))}-{'/'.join(sorted(self.dests))}"

    def covers(self, origin: str, destination: str) -> bool:
        return origin in self.keys and destination in self.dests


def _merge_by_dests(groups: list[QueryGroup], cap: int) -> list[QueryGroup]:
    """Fold a group into any other whose dests are a superset of its own."""
    alive = [True] * len(groups)
    changed = True
    while changed:
        changed = False
        for i, small in enumerate(groups):
            if not alive[i]:
                continue
            for j, big in enumerate(groups):
                if i == j or not alive[j] or not small.dests <= big.dests:
                    continue
                keys = big.keys | small.keys
                if len(keys) * len(big.dests) > cap:
                    continue
                big.keys = keys
                alive[i] = False
                changed = True
                break
    return [g for g, keep in zip(groups, alive) if keep]


def _merge_by_keys(groups: list[QueryGroup], cap: int) -> list[QueryGroup]:
    """Fold a group into any other whose keys are a superset of its own, smallest key sets first."""
    alive = [True] * len(groups)
    changed = True
    while changed:
        changed = False
        order = sorted((i for i in range(len(groups)) if alive[i]), key=lambda i: len(groups[i].keys))
        for pos, i in enumerate(order):
            if not alive[i]:
                continue
            for j in order[pos + 1:]:
                if not alive[j]:
                    continue
                a, b = groups[i], groups[j]
                if a.keys <= b.keys:
                    small, big, small_idx = a, b, i
                elif b.keys <= a.keys:
                    small, big, small_idx = b, a, j
                else:
                    continue
                dests = big.dests | small.dests
                if len(big.keys) * len(dests) > cap:
                    continue
                big.dests = dests
                alive[small_idx] = False
                changed = True
                if small_idx == i:
                    break
    return [g for g, keep in zip(groups, alive) if keep]


def _split(group: QueryGroup, cap: int) -> list[QueryGroup]:
    """Break a group over the cap into pieces that fit, covering the same pairs."""
    keys = sorted(group.keys)
    dests = sorted(group.dests)
    if len(dests) <= cap:
        per = cap // len(dests)
        return [QueryGroup(set(keys[i:i + per]), set(dests)) for i in range(0, len(keys), per)]
    return [
        QueryGroup({key}, set(dests[i:i + cap]))
        for key in keys
        for i in range(0, len(dests), cap)
    ]


def build_query_groups(
    legs: Iterable[tuple[str, str]],
    destinations: Iterable[str],
    cap: int | None = None,
) -> list[QueryGroup]:
    """
    Consolidate legs into query groups.

    Legs ending at a requested destination start out grouped by that
    destination; all other legs start grouped by their origin. Groups are
    merged on destination subsets, then groups whose destinations are all
    requested ones are also merged on key subsets. Anything still over the
    cap is split. Larger destination sets come first, then by keys.
    """
    cap = cap or settings.query_group_cap
    requested = set(destinations)

    terminal: dict[str, set[str]] = {}
    interior: dict[str, set[str]] = {}
    for origin, destination in legs:
        if destination in requested:
            terminal.setdefault(destination, set()).add(origin)
        else:
            interior.setdefault(origin, set()).add(destination)

    groups = [QueryGroup({origin}, dests) for origin, dests in interior.items()]
    groups += [QueryGroup(origins, {dest}) for dest, origins in terminal.items()]
    groups = _merge_by_dests(groups, cap)

    inside = [g for g in groups if g.dests <= requested]
    others = [g for g in groups if not g.dests <= requested]
    inside = _merge_by_keys(_merge_by_dests(inside, cap), cap)

    final: list[QueryGroup] = []
    for group in inside + others:
        if group.size > cap:
            # Split rather than drop, so every leg keeps a query.
            logger.info(f"Query group {group.identifier} exceeds cap {cap}, splitting")
            final.extend(_split(group, cap))
        else:
            final.append(group)

    final.sort(key=lambda g: (-len(g.dests), "/".join(sorted(g.keys))))
    logger.debug(f"{len(final)} query groups from {len(interior) + len(terminal)} initial buckets")
    return final
