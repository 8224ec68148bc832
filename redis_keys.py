REDIS_PENDING_KEY = "pairing:pending:{joinid}" # hash - one pending join code
REDIS_PENDING_EXPIRY_KEY = "pairing:pendings:exp" # sorted set - joinid scored by expiry
REDIS_ROOM_KEY = "pairing:room:{roomid}" # hash - one durable room
REDIS_CLIENT_PENDINGS_KEY = "pairing:client:{client_id}:pendings" # set of joinids referencing the client
REDIS_CLIENT_ROOMS_KEY = "pairing:client:{client_id}:rooms" # set of roomids referencing the client

# **Example `pairing:pending:{joinid}` hash fields**
# - `joinid` = join code
# - `client1` = creator identity
# - `exp` = absolute expiry, epoch seconds from the Redis server clock
# - `client2` = acceptor identity (absent until accepted)
# - `roomid` = durable room id (absent until accepted)
# - `client1_push_token` / `client1_platform` (optional)
# - `client2_push_token` / `client2_platform` (optional)

# **Example `pairing:room:{roomid}` hash fields**
# - `roomid`, `client1`, `client2`
# - `created_at` = epoch seconds from the Redis server clock
# - `client1_push_token` / `client1_platform` (optional)
# - `client2_push_token` / `client2_platform` (optional)
