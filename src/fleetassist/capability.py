from abc import ABC, abstractmethod

from fleetassist.tools import Tool


class Capability(ABC):
    """A cohesive group of tools sharing the same collaborators.

    Capabilities sit between a single tool and the registry: they own the
    external services their tools call, and ``ToolRegistry.add_capability``
    registers every tool they return.

    Args:
        name: Unique name identifying this capability.

    Example::

        class FleetStatus(Capability):
            def __init__(self, fleet: FleetService):
                super().__init__("fleet_status")
                self._fleet = fleet

            def tools(self) -> list[Tool]:
                fleet = self._fleet

                @tool
                async def vehicle_status(plate: str):
                    return await fleet.status(plate)

                return [vehicle_status]
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def tools(self) -> list[Tool]:
        """Return the tools this capability provides.

        Tools typically close over ``self`` to reach the capability's
        collaborators.
        """
        ...
