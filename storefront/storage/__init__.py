from storefront.storage.local_store import (
    FileStorage,
    KeyValueStorage,
    MemoryStorage,
    RedisStorage,
    create_storage,
)

__all__ = ["FileStorage", "KeyValueStorage", "MemoryStorage", "RedisStorage", "create_storage"]
