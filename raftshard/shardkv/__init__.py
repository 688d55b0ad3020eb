"""Client, messages and per-group state machine of a sharded key/value store."""