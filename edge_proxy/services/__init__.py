# Services package init
"""
Edge Proxy - Services Layer
=============================

Service Inventory:
    - KeyValueStore (abstract): expiring string store interface
    - MemoryStore / RedisStore: concrete stores
    - RateLimiter: per-client counter on the store
    - ResponseCache: cache keys, TTL rules, body lookup/store
    - BackgroundTaskSet: supervised fire-and-forget tasks
    - ProxyService: relays /api/ requests to the origin
"""
