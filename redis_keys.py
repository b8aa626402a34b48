REDIS_ROOM_SEQ_KEY = "room:seq" # counter - next room id
REDIS_MESSAGE_SEQ_KEY = "message:seq" # counter - next message id, global so ids order messages
REDIS_META_KEY = "room:meta:{room_id}" # room id - hash of room fields
REDIS_MESSAGES_KEY = "room:messages:{room_id}" # room id - list of JSON messages, oldest first
REDIS_ACTIVE_ROOMS_KEY = "rooms:active" # set of room ids accepting joins
REDIS_ARCHIVED_ROOMS_KEY = "rooms:archived" # set of archived room ids

# **`room:meta:{id}` hash fields**
# - `id` = integer room id
# - `name` = escaped room name
# - `capacity` = integer, absent when unlimited
# - `creator` = identity of the creating user
# - `is_private` = "0" / "1", private rooms stay out of room listings
# - `created_at` = ISO timestamp
# Archived state is not a hash field: a room is archived iff its id is in `rooms:archived`.
