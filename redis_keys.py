REDIS_META_KEY = "meta:{slug}" # room id - room metadata hash
REDIS_MESSAGES_KEY = "messages:{slug}" # room id - ordered list of JSON messages
REDIS_TYPING_KEY = "typing:{slug}" # room id - token -> last typing ms
REDIS_REACTIONS_KEY = "reactions:{slug}" # room id - reaction-adjacent data, dropped on destroy
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel name
REDIS_RATELIMIT_KEY = "ratelimit:{scope}:{identifier}" # sorted set, score = request time (s)

# **`meta:{id}` hash fields**
# - `connected` = json list of membership tokens (max 2)
# - `createdAt` = ms timestamp
# - `ttlSeconds` = configured lifetime
# - `passwordHash` = bcrypt hash (optional)
# - `encryptionKeyHash` = 16 hex chars of sha256(key) (optional)
#
# Every other per-room key mirrors the TTL of `meta:{id}`.
