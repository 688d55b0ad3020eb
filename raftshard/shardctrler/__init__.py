"""Replicated shard controller that assigns shards to replica groups."""