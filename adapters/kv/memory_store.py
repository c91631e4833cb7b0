"""
메모리 Key-Value 저장소

프로세스 메모리에만 유지되는 IKeyValueStore 구현.
storage.kv_path가 ":memory:"일 때와 테스트에서 사용.
"""

from dataclasses import dataclass, field


@dataclass
class KeyValueCallLog:
    """호출 횟수 기록 (테스트 검증용)"""

    gets: int = 0
    sets: int = 0
    removes: int = 0
    all_keys: int = 0

    @property
    def total(self) -> int:
        return self.gets + self.sets + self.removes + self.all_keys


class MemoryKeyValueStore:
    """메모리 Key-Value 저장소

    IKeyValueStore Protocol 구현.

    Args:
        initial: 초기 데이터 (복사해서 사용)
        fail_writes: True면 set/remove가 OSError 발생 (저장 실패 시나리오용)
    """

    def __init__(
        self,
        initial: dict[str, str] | None = None,
        fail_writes: bool = False,
    ):
        self.data: dict[str, str] = dict(initial or {})
        self.fail_writes = fail_writes
        self.calls = KeyValueCallLog()

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise OSError("Simulated storage write failure")

    async def get(self, key: str) -> str | None:
        self.calls.gets += 1
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.calls.sets += 1
        self._check_writable()
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.calls.removes += 1
        self._check_writable()
        self.data.pop(key, None)

    async def remove_many(self, keys: list[str]) -> None:
        self.calls.removes += 1
        self._check_writable()
        for key in keys:
            self.data.pop(key, None)

    async def all_keys(self) -> list[str]:
        self.calls.all_keys += 1
        return sorted(self.data)
