import logging
from typing import Any, Dict, Optional

from kubernetes.client import CustomObjectsApi
from kubernetes.client.rest import ApiException

from events_aggregator.events import EventSet

logger = logging.getLogger("events-store")

FIELD_MANAGER = "events-aggregator"
APPLY_PATCH = "application/apply-patch+yaml"


class EventStoreError(RuntimeError):
    def __init__(self, operation: str, name: str, cause: ApiException):
        super().__init__(f"Event store {operation} of '{name}' failed: {cause.status} {cause.reason}")
        self.operation = operation
        self.status = cause.status


class EventStore:
    """
    The persisted copy of the counters: one namespaced custom object whose
    `spec.events` holds the nested Category -> Action -> count mapping.
    """

    def __init__(self, api: CustomObjectsApi, group: str, version: str, plural: str, kind: str,
                 name: str, namespace: str, field_manager: str = FIELD_MANAGER):
        self._api = api
        self.group = group
        self.version = version
        self.plural = plural
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.field_manager = field_manager

    @classmethod
    def from_config(cls, api: CustomObjectsApi, config: Dict[str, Any]) -> "EventStore":
        return cls(
            api,
            group=config["EVENT_STORE_GROUP"],
            version=config["EVENT_STORE_VERSION"],
            plural=config["EVENT_STORE_PLURAL"],
            kind=config["EVENT_STORE_KIND"],
            name=config["EVENT_STORE_NAME"],
            namespace=config["EVENT_STORE_NAMESPACE"],
        )

    def build_body(self, events: EventSet) -> Dict[str, Any]:
        return {
            "apiVersion": f"{self.group}/{self.version}",
            "kind": self.kind,
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": {"events": events.to_dict()},
        }

    @staticmethod
    def decode(resource: Dict[str, Any]) -> EventSet:
        spec = resource.get("spec") or {}
        return EventSet.from_dict(spec.get("events"))

    def get(self) -> Optional[Dict[str, Any]]:
        """Returns the resource, or None if it does not exist."""
        try:
            return self._api.get_namespaced_custom_object(
                group=self.group,
                version=self.version,
                namespace=self.namespace,
                plural=self.plural,
                name=self.name,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise EventStoreError("get", self.name, e) from e

    def create(self, events: EventSet) -> Dict[str, Any]:
        try:
            resource = self._api.create_namespaced_custom_object(
                group=self.group,
                version=self.version,
                namespace=self.namespace,
                plural=self.plural,
                body=self.build_body(events),
            )
            logger.info(f"Created event store {self.namespace}/{self.name}")
            return resource
        except ApiException as e:
            if e.status != 409:
                raise EventStoreError("create", self.name, e) from e

        # Somebody else created it between our get and create.
        logger.info(f"Event store {self.namespace}/{self.name} already exists")
        resource = self.get()
        if resource is None:
            raise EventStoreError("create", self.name, ApiException(status=404, reason="Vanished after conflict"))
        return resource

    def load_or_create(self) -> EventSet:
        resource = self.get()
        if resource is None:
            logger.info(f"Event store {self.namespace}/{self.name} not found, creating it")
            resource = self.create(EventSet())
        return self.decode(resource)

    def apply(self, events: EventSet) -> Dict[str, Any]:
        """Server-side apply of the counters under our field manager (last write wins)."""
        try:
            return self._api.patch_namespaced_custom_object(
                group=self.group,
                version=self.version,
                namespace=self.namespace,
                plural=self.plural,
                name=self.name,
                body=self.build_body(events),
                field_manager=self.field_manager,
                force=True,
                _content_type=APPLY_PATCH,
            )
        except ApiException as e:
            raise EventStoreError("apply", self.name, e) from e
