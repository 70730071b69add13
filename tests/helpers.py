import copy

from store import INITIALIZED, OK, ReadResult, StoreError, highest_id


class InMemoryActionStore:
    """Same interface as ActionStore, backed by a list instead of a file."""

    def __init__(self, actions=None):
        self.actions = copy.deepcopy(actions) if actions is not None else None
        self.id_watermark = highest_id(self.actions or [])
        self.writes = 0

    def read(self) -> ReadResult:
        if self.actions is None:
            self.actions = []
            return ReadResult([], INITIALIZED)
        return ReadResult(copy.deepcopy(self.actions), OK)

    def write(self, actions) -> None:
        if not isinstance(actions, list):
            raise StoreError("Data must be an array")
        self.actions = copy.deepcopy(actions)
        self.id_watermark = max(self.id_watermark, highest_id(actions))
        self.writes += 1


class BrokenStore(InMemoryActionStore):
    """Reads fine, fails every write."""

    def write(self, actions) -> None:
        raise StoreError("Failed to write data: [Errno 28] No space left on device")


def make_action(id, action="Biked to work", date="2024-01-10", points=10):
    return {"id": id, "action": action, "date": date, "points": points}
