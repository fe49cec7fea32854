"""In-memory key-value storage adapter."""


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStorePort.

    Stores values in a dict shared by the sync and async methods.
    Suitable for testing and for hosts where persistence across restarts
    is not required.
    """

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def get_sync(self, key: str) -> str | None:
        return self._values.get(key)

    def set_sync(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete_sync(self, key: str) -> None:
        self._values.pop(key, None)
