from abc import ABC, abstractmethod


class LivenessProbe(ABC):
    """Tells the watcher whether the client session is still connected"""

    name = "base"

    @abstractmethod
    def _alive(self) -> bool:
        pass

    def alive(self) -> bool:
        return self._alive()

    def describe(self) -> str:
        return self.name
