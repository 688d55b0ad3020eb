from collections import Counter

import pytest

from raftshard.shardctrler.balancer import (
    move_shard,
    new_config,
    query_config,
    remove_groups,
)
from raftshard.shardctrler.common import NSHARDS, Config


def check(config, groups):
    assert len(config.groups) == len(groups)
    for g in groups:
        assert g in config.groups, f"missing group {g}"
    if groups:
        for s, g in enumerate(config.shards):
            assert g in config.groups, f"shard {s} -> invalid group {g}"
    counts = Counter(config.shards)
    if config.groups:
        loads = [counts[g] for g in config.groups]
        assert max(loads) <= min(loads) + 1


def check_same_config(c1, c2):
    assert c1.num == c2.num
    assert c1.shards == c2.shards
    assert c1.groups == c2.groups


def join(configs, groups):
    configs.append(new_config(configs, groups))


def leave(configs, gids):
    configs.append(remove_groups(configs, gids))


def move(configs, shard, gid):
    configs.append(move_shard(configs, shard, gid))


def latest(configs):
    return query_config(configs, -1)


def test_leave_join_and_historical_queries():
    configs = [Config()]
    cfa = [latest(configs)]
    check(latest(configs), [])

    join(configs, {1: ["x", "y", "z"]})
    check(latest(configs), [1])
    cfa.append(latest(configs))

    join(configs, {2: ["a", "b", "c"]})
    check(latest(configs), [1, 2])
    cfa.append(latest(configs))

    cfx = latest(configs)
    assert cfx.groups[1] == ["x", "y", "z"]
    assert cfx.groups[2] == ["a", "b", "c"]

    leave(configs, [1])
    check(latest(configs), [2])
    cfa.append(latest(configs))

    leave(configs, [2])
    cfa.append(latest(configs))
    assert latest(configs).shards == [0] * NSHARDS

    for c in cfa:
        check_same_config(query_config(configs, c.num), c)


def test_move():
    configs = [Config()]
    gid3, gid4 = 503, 504
    join(configs, {gid3: ["3a", "3b", "3c"]})
    join(configs, {gid4: ["4a", "4b", "4c"]})
    for i in range(NSHARDS):
        before = latest(configs)
        move(configs, i, gid3 if i < NSHARDS // 2 else gid4)
        assert latest(configs).num > before.num
    cf2 = latest(configs)
    for i in range(NSHARDS):
        expected = gid3 if i < NSHARDS // 2 else gid4
        assert cf2.shards[i] == expected


def test_sequential_leave_join_stays_balanced():
    configs = [Config()]
    npara = 10
    gids = [xi * 10 + 100 for xi in range(npara)]
    for gid in gids:
        join(configs, {gid + 1000: [f"s{gid}a"]})
        join(configs, {gid: [f"s{gid}b"]})
        leave(configs, [gid + 1000])
    check(latest(configs), gids)


def test_minimal_transfer_after_joins_and_leaves():
    configs = [Config()]
    npara = 10
    join(configs, {1: ["x", "y", "z"]})
    join(configs, {2: ["a", "b", "c"]})
    c1 = latest(configs)
    for i in range(5):
        gid = npara + 1 + i
        join(configs, {gid: [f"{gid}a", f"{gid}b", f"{gid}b"]})
    c2 = latest(configs)
    for i in range(1, npara + 1):
        for j in range(NSHARDS):
            if c2.shards[j] == i:
                assert c1.shards[j] == i, "non-minimal transfer after Join()s"
    for i in range(5):
        leave(configs, [npara + 1 + i])
    c3 = latest(configs)
    for i in range(1, npara + 1):
        for j in range(NSHARDS):
            if c2.shards[j] == i:
                assert c3.shards[j] == i, "non-minimal transfer after Leave()s"
    check(c3, [1, 2])


def test_minimal_again():
    configs = [Config()]
    join(configs, {1: ["x", "y", "z"]})
    join(configs, {2: ["a", "b", "c"]})
    c1 = latest(configs)
    join(configs, {3: ["d", "e", "f"]})
    c2 = latest(configs)

    for i in range(NSHARDS):
        if c2.shards[i] != 3:
            assert c1.shards[i] == c2.shards[i]
    changed = sum(1 for a, b in zip(c1.shards, c2.shards) if a != b)
    assert changed <= NSHARDS // 3 + 1

    leave(configs, [1])
    c3 = latest(configs)
    for i in range(NSHARDS):
        if c2.shards[i] != 1:
            assert c2.shards[i] == c3.shards[i]
    changed = sum(1 for a, b in zip(c2.shards, c3.shards) if a != b)
    assert changed <= NSHARDS // 3 + 1
    check(c3, [2, 3])


def test_multi_leave_join():
    configs = [Config()]
    check(latest(configs), [])
    join(configs, {1: ["x", "y", "z"], 2: ["a", "b", "c"]})
    check(latest(configs), [1, 2])
    join(configs, {3: ["j", "k", "l"]})
    check(latest(configs), [1, 2, 3])
    cfx = latest(configs)
    assert cfx.groups[1] == ["x", "y", "z"]
    assert cfx.groups[2] == ["a", "b", "c"]
    assert cfx.groups[3] == ["j", "k", "l"]
    leave(configs, [1, 3])
    check(latest(configs), [2])
    assert latest(configs).groups[2] == ["a", "b", "c"]


def test_sequential_multi_leave_join_stays_balanced():
    configs = [Config()]
    gids = [xi + 1000 for xi in range(10)]
    for gid in gids:
        join(configs, {
            gid: [f"{gid}a", f"{gid}b", f"{gid}c"],
            gid + 1000: [f"{gid + 1000}a"],
            gid + 2000: [f"{gid + 2000}a"],
        })
        leave(configs, [gid + 1000, gid + 2000])
    check(latest(configs), gids)


def test_groups_beyond_shard_count_wait_in_standby():
    configs = [Config()]
    gids = list(range(1, NSHARDS + 2))
    for gid in gids:
        join(configs, {gid: [f"s{gid}"]})
    full = latest(configs)
    assert len(full.groups) == NSHARDS
    assert gids[-1] not in full.groups
    leave(configs, [gids[0]])
    after = latest(configs)
    assert gids[-1] in after.groups
    check(after, gids[1:])


def test_first_join_without_groups_raises():
    with pytest.raises(ValueError):
        new_config([Config()], {})


def test_move_out_of_range_shard_changes_nothing():
    configs = [Config()]
    join(configs, {1: ["x"]})
    before = latest(configs)
    move(configs, NSHARDS, 7)
    after = latest(configs)
    assert after.shards == before.shards
    assert after.num == before.num + 1


def test_query_config_numbers():
    configs = [Config()]
    join(configs, {1: ["x"]})
    join(configs, {2: ["y"]})
    assert query_config(configs, -1) == configs[-1]
    assert query_config(configs, 100) == configs[-1]
    assert query_config(configs, 1) == configs[1]
    assert query_config([], 3) == Config()
    with pytest.raises(IndexError):
        query_config(configs, -2)


def test_query_config_returns_independent_copy():
    configs = [Config()]
    join(configs, {1: ["x"]})
    result = query_config(configs, -1)
    result.groups[1].append("mutated")
    assert configs[-1].groups[1] == ["x"]