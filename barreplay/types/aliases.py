# -------- Aliases (clarify intent) --------
UnixMillis = int
ByteOffset = int
