"""Maps a unit identity (top-level import name) to the component that owns it."""
from typing import Dict, Iterable, List, Optional

from .workspace import Component


class ComponentIndex:
    """Case-insensitive identity -> Component lookup.

    The first component registered for an identity keeps it; later
    registrations of the same identity are dropped silently, since stale
    copies of a project can legitimately coexist in one tree.
    """

    def __init__(self, components: Iterable[Component] = ()):
        self._by_identity: Dict[str, Component] = {}
        self._components: List[Component] = []
        for component in components:
            self.register(component)

    def register(self, component: Component):
        """Insert a component under each of its identities."""
        identities = component.identities or (component.unit_identity,)
        accepted = False
        for identity in identities:
            key = identity.casefold()
            if key not in self._by_identity:
                self._by_identity[key] = component
                accepted = True
        if accepted:
            self._components.append(component)

    def resolve(self, unit_identity: Optional[str]) -> Optional[Component]:
        """Owning component of an identity, or None if it is not part of the workspace."""
        if not unit_identity:
            return None
        return self._by_identity.get(unit_identity.casefold())

    def components(self) -> List[Component]:
        """Registered components in registration order."""
        return list(self._components)

    def __contains__(self, unit_identity: str) -> bool:
        return self.resolve(unit_identity) is not None

    def __len__(self) -> int:
        return len(self._components)
