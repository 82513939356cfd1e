"""Code shared by the Discord bot and the storage service."""
