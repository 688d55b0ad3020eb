"""Derive new shard configurations from the history of configurations."""

from __future__ import annotations

import copy
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence

from raftshard.shardctrler.common import NSHARDS, Config


def _next_shard(index: int) -> int:
    return (index + 1) % NSHARDS


def _derive(current: Config) -> Config:
    """A successor of ``current`` with copied shards, groups and standby."""
    return Config(
        num=current.num + 1,
        shards=list(current.shards),
        groups={gid: list(servers) for gid, servers in current.groups.items()},
        standby={gid: list(servers) for gid, servers in current.standby.items()},
    )


def _shard_state(config: Config) -> tuple[Counter[int], int, int]:
    """Shard counts per GID, the largest count, and how many shards share it."""
    counts = Counter(config.shards)
    max_length = max(counts.values())
    max_count = sum(1 for gid in config.shards if counts[gid] == max_length)
    return counts, max_length, max_count


def _min_gids(config: Config) -> list[int]:
    """Sorted GIDs of the serving groups that hold the fewest shards."""
    counts = {gid: 0 for gid in config.groups}
    for gid in config.shards:
        if gid in counts:
            counts[gid] += 1
    if not counts:
        return []
    low = min(counts.values())
    return sorted(gid for gid, count in counts.items() if count == low)


def new_config(configs: Sequence[Config], groups: Mapping[int, list[str]]) -> Config:
    """Configuration after ``groups`` join, moving as few shards as possible.

    Groups beyond ``NSHARDS`` wait in standby. Raises ValueError when the
    first join brings no group to assign the shards to.
    """
    current = configs[-1]
    new = _derive(current)

    joined = []
    for gid in sorted(groups):
        if len(new.groups) < NSHARDS:
            new.groups[gid] = list(groups[gid])
            joined.append(gid)
        elif gid not in new.groups:
            new.standby[gid] = list(groups[gid])

    if not current.groups:
        if not joined:
            raise ValueError("no groups to assign shards to")
        new.shards = [joined[shard % len(joined)] for shard in range(NSHARDS)]
        return new

    counts, max_length, max_count = _shard_state(new)
    for gid in joined:
        counts[gid] = 0
        index = 0
        while counts[gid] + 1 < max_length:
            old = new.shards[index]
            if counts[old] == max_length:
                new.shards[index] = gid
                max_count -= counts[old]
                counts[old] -= 1
                counts[gid] += 1
                if max_count == 0:
                    counts, max_length, max_count = _shard_state(new)
            index = _next_shard(index)
    return new


def remove_groups(configs: Sequence[Config], gids: Iterable[int]) -> Config:
    """Configuration after ``gids`` leave; their shards go to the least loaded groups."""
    leaving = list(gids)
    current = configs[-1]
    new = _derive(current)

    for gid in leaving:
        new.standby.pop(gid, None)
    for gid in leaving:
        new.groups.pop(gid, None)
    new.shards = [gid if gid in new.groups else 0 for gid in new.shards]

    free = NSHARDS - len(new.groups)
    for gid in sorted(new.standby)[:free]:
        new.groups[gid] = new.standby.pop(gid)

    if not new.groups:
        new.shards = [0] * NSHARDS
        return new

    candidates = _min_gids(new)
    for shard, gid in enumerate(new.shards):
        if gid != 0:
            continue
        new.shards[shard] = candidates.pop(0)
        if not candidates:
            candidates = _min_gids(new)
    return new


def move_shard(configs: Sequence[Config], shard: int, gid: int) -> Config:
    """Configuration with ``shard`` handed to ``gid``; other shards stay put."""
    new = _derive(configs[-1])
    if 0 <= shard < NSHARDS:
        new.shards[shard] = gid
    return new


def query_config(configs: Sequence[Config], num: int) -> Config:
    """Configuration ``num``, or the latest one if ``num`` is -1 or too large."""
    if not configs:
        return Config()
    current = configs[-1]
    if num == -1 or num >= current.num:
        return copy.deepcopy(current)
    if num < 0:
        raise IndexError(f"no configuration numbered {num}")
    return copy.deepcopy(configs[num])