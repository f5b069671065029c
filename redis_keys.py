REDIS_SIGNAL_CHANNEL = "signal:channel:{slug}" # room id - pub/sub channel name

# **Envelope published on `signal:channel:{id}`**
# - `event` = the event dict delivered to subscribers
# - `exclude` = connection id that must not receive it (join notifications), or null
# - `origin` = instance id of the publisher
