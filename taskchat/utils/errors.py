from pymongo.errors import PyMongoError
from redis.exceptions import RedisError


class StoreError(Exception):
    """Raised when the backing store rejects a query or write."""


# Everything a store round-trip may raise; callers catch this tuple at the
# session boundary and degrade to a stale view.
STORE_ERRORS = (StoreError, PyMongoError, RedisError)
