"""
Process-wide table of live managed objects.

The registry is the addressing mechanism event subscriptions rely on: every
listener remembers its owner's id, and owner-based unsubscription looks the
owner up by that id.
"""

import uuid
from typing import TYPE_CHECKING, Dict, List, Optional

from loguru import logger

if TYPE_CHECKING:
    from .managed import ManagedObject


def unique_suffix(length: int = 4) -> str:
    """Short random suffix used to disambiguate identifiers."""
    return uuid.uuid4().hex[:length]


class ObjectRegistry:
    """
    Identifier to object mapping for live managed objects.

    Invariant: an identifier maps to at most one live object at any instant.
    A requested identifier that collides with a live object gets a short
    random suffix appended.

    Examples:
        >>> registry = ObjectRegistry()
        >>> object_id = registry.register(obj, "Global_Report#ab")
        >>> registry.exists(object_id)
        True
        >>> registry.unregister(obj)
        True
    """

    def __init__(self, log=None):
        self._objects: Dict[str, "ManagedObject"] = {}
        self._log = log or logger

    def register(self, obj: "ManagedObject", requested_id: str) -> str:
        """
        Register an object under the requested id and return the final id.

        Args:
            obj: Object to register
            requested_id: Preferred identifier

        Returns:
            str: The identifier the object was registered under
        """
        object_id = requested_id
        while object_id in self._objects:
            object_id = requested_id + unique_suffix(2)

        if object_id != requested_id:
            self._log.info(
                f"ObjectRegistry::register Object with id = {requested_id} "
                f"already exists, new id = {object_id}"
            )

        self._objects[object_id] = obj
        return object_id

    def unregister(self, obj: "ManagedObject") -> bool:
        """
        Remove the object's mapping.

        The mapping is removed only when it still points to this exact
        instance, so a stale object cannot evict the current owner of an id.

        Returns:
            bool: True if the mapping was removed
        """
        object_id = obj.id
        if self._objects.get(object_id) is obj:
            del self._objects[object_id]
            return True

        self._log.error(
            f"ObjectRegistry::unregister Object with id {object_id} not found"
        )
        return False

    def exists(self, object_id: str) -> bool:
        return object_id in self._objects

    def get(self, object_id: str) -> Optional["ManagedObject"]:
        return self._objects.get(object_id)

    def ids(self) -> List[str]:
        return list(self._objects)

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, object_id: str) -> bool:
        return self.exists(object_id)
