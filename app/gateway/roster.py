"""Backend roster: the fixed, priority-ordered list of backends to try."""

from __future__ import annotations

from collections.abc import Iterator, Sequence

from app.gateway.types import BackendDescriptor, BackendProvider


class BackendRoster:
    """Immutable, priority-ordered collection of BackendDescriptors.

    Priorities must be unique; iteration yields lowest priority first.
    """

    def __init__(self, backends: Sequence[BackendDescriptor]):
        priorities = [b.priority for b in backends]
        if len(set(priorities)) != len(priorities):
            raise ValueError("Backend priorities must be unique")
        ids = [b.id for b in backends]
        if len(set(ids)) != len(ids):
            raise ValueError("Backend ids must be unique")
        self._backends: tuple[BackendDescriptor, ...] = tuple(sorted(backends, key=lambda b: b.priority))

    @classmethod
    def from_ids(cls, ids: Sequence[str], provider: BackendProvider = BackendProvider.OPENROUTER) -> BackendRoster:
        """Build a roster whose order is the order of ``ids``."""
        backends = [BackendDescriptor(id=backend_id, priority=i, provider=provider) for i, backend_id in enumerate(ids)]
        return cls(backends)

    @classmethod
    def from_settings(cls, settings) -> BackendRoster:
        return cls.from_ids(settings.backend_roster)

    def __iter__(self) -> Iterator[BackendDescriptor]:
        return iter(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    def __getitem__(self, index: int) -> BackendDescriptor:
        return self._backends[index]

    @property
    def ids(self) -> list[str]:
        return [b.id for b in self._backends]
