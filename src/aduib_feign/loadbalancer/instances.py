import inspect
import itertools
import logging
import threading
from abc import ABC, abstractmethod

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ServiceInstance(BaseModel):
    """Represents one reachable instance of a named service."""
    service_name: str
    host: str
    port: int
    scheme: str = "http"
    weight: int = 1
    metadata: dict[str, str] | None = {}

    @property
    def url(self) -> str:
        """Constructs the base URL for the service instance."""
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def instance_id(self) -> str:
        """Returns the service instance ID."""
        return f"{self.service_name}:{self.host}:{self.port}"

    def get_metadata_value(self, key: str) -> str | None:
        """Retrieves a metadata value by key."""
        if self.metadata and key in self.metadata:
            return self.metadata[key]
        return None


class ServiceInstanceChooser(ABC):
    """Selects an instance for a service id.

    ``choose`` may be a plain method or a coroutine; callers go through
    :func:`choose_instance` which handles both.
    """

    @abstractmethod
    def choose(self, service_id: str) -> ServiceInstance | None:
        raise NotImplementedError


async def choose_instance(chooser: ServiceInstanceChooser, service_id: str) -> ServiceInstance | None:
    result = chooser.choose(service_id)
    if inspect.isawaitable(result):
        result = await result
    if result is not None and not isinstance(result, ServiceInstance):
        logger.warning(
            "Chooser %s returned %s for %s; expected ServiceInstance",
            type(chooser).__name__,
            type(result).__name__,
            service_id,
        )
        return None
    return result


class RoundRobinInstanceChooser(ServiceInstanceChooser):
    """In-memory chooser cycling through the registered instances of each service."""

    def __init__(self, instances: list[ServiceInstance] | None = None) -> None:
        self._services: dict[str, list[ServiceInstance]] = {}
        self._counters: dict[str, itertools.count] = {}
        self._lock = threading.Lock()
        for instance in instances or ():
            self.register(instance)

    def register(self, instance: ServiceInstance) -> None:
        with self._lock:
            self._services.setdefault(instance.service_name, []).append(instance)
        logger.info("Registered instance %s", instance.instance_id)

    def unregister(self, instance: ServiceInstance) -> None:
        with self._lock:
            instances = self._services.get(instance.service_name) or []
            self._services[instance.service_name] = [
                item for item in instances if item.instance_id != instance.instance_id
            ]
        logger.info("Unregistered instance %s", instance.instance_id)

    def list_instances(self, service_id: str) -> list[ServiceInstance]:
        return list(self._services.get(service_id) or [])

    def choose(self, service_id: str) -> ServiceInstance | None:
        with self._lock:
            instances = self._services.get(service_id)
            if not instances:
                return None
            counter = self._counters.setdefault(service_id, itertools.count())
            return instances[next(counter) % len(instances)]
