import copy
import pickle

import pytest

from raftshard.shardctrler.common import (
    NSHARDS,
    Config,
    Err,
    JoinArgs,
    QueryReply,
)


def test_err_values_match_wire_strings():
    assert Err.OK == "OK"
    assert Err.WRONG_LEADER == "ErrWrongLeader"
    assert Err("ErrTimeout") is Err.TIMEOUT


def test_initial_config_assigns_every_shard_to_invalid_group():
    config = Config()
    assert config.num == 0
    assert config.shards == [0] * NSHARDS
    assert config.groups == {}


def test_config_equality_ignores_standby():
    a = Config(num=3, shards=[1] * NSHARDS, groups={1: ["x"]})
    b = Config(num=3, shards=[1] * NSHARDS, groups={1: ["x"]}, standby={9: ["y"]})
    assert a == b


def test_config_rejects_wrong_shard_count():
    with pytest.raises(ValueError):
        Config(shards=[0] * (NSHARDS - 1))


def test_config_pickle_round_trip():
    config = Config(num=2, shards=[5] * NSHARDS, groups={5: ["a", "b"]}, standby={6: ["c"]})
    restored = pickle.loads(pickle.dumps(config))
    assert restored == config
    assert restored.standby == config.standby


def test_query_reply_defaults():
    reply = QueryReply()
    assert reply.wrong_leader is False
    assert reply.err is None
    assert reply.config == Config()


def test_args_deep_copy_is_independent():
    args = JoinArgs(servers={1: ["x", "y"]}, index=4, clerk=9)
    clone = copy.deepcopy(args)
    clone.servers[1].append("z")
    assert args.servers == {1: ["x", "y"]}
    assert clone.index == args.index and clone.clerk == args.clerk