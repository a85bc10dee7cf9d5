from typing import Dict, Iterable, Iterator, List, Optional

from portswitch.model.Core.header import RouteTarget, RouteNotFoundError


class TargetRegistry:
    """
    Immutable route id -> remote host table, built once from the config.

    Nothing mutates it after construction, so lookups need no lock.
    """

    def __init__(self, targets: Iterable[RouteTarget]):
        self._targets = tuple(targets)
        self._by_id: Dict[str, RouteTarget] = {}
        for target in self._targets:
            # first entry wins, same as a linear scan
            self._by_id.setdefault(target.id, target)

    def lookup(self, route_id: str) -> Optional[RouteTarget]:
        """Return the target registered under route_id, or None."""
        return self._by_id.get(route_id)

    def resolve(self, route_id: str) -> RouteTarget:
        """Like lookup() but raises RouteNotFoundError on a miss."""
        target = self.lookup(route_id)
        if target is None:
            raise RouteNotFoundError(route_id)
        return target

    def ids(self) -> List[str]:
        return [t.id for t in self._targets]

    def __iter__(self) -> Iterator[RouteTarget]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, route_id: object) -> bool:
        return route_id in self._by_id
