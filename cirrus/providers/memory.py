"""
In-memory remote call layer for planning, dry runs and tests.
"""

import hashlib
import logging
import threading
import time
from typing import Any

from cirrus.config.provider import AwsConfig
from cirrus.core.declaration import ResourceKind
from cirrus.core.errors import RemoteCallFailure
from cirrus.providers.base import CallResult, RemoteCallLayer, ResourceSpec

logger = logging.getLogger(__name__)


def _short_id(*parts: str, length: int = 10) -> str:
    digest = hashlib.sha1("/".join(parts).encode("utf-8")).hexdigest()
    return digest[:length]


class InMemoryProvider(RemoteCallLayer):
    """
    Deterministic stand-in for the AWS control plane.

    Identifiers and ARNs are derived from the resource kind and logical
    name, so provisioning the same declarations twice yields the same
    attributes. An update whose properties match what is stored is
    treated as already satisfied.

    Example:
        provider = InMemoryProvider(
            AwsConfig(region="us-east-1", account_id="123456789012"),
            failures={"videoTable": "ProvisionedThroughputExceeded"},
        )
        report = stack.apply(provider)
    """

    def __init__(
        self,
        config: AwsConfig | None = None,
        failures: dict[str, str] | None = None,
        delay: float = 0.0,
    ):
        """
        Initialize the provider.

        Args:
            config: Region, account and tags to stamp on resources
            failures: Logical names whose create/update calls fail, with the
                failure reason
            delay: Seconds each call sleeps, to simulate control plane latency
        """
        self.config = config or AwsConfig()
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self._resources: dict[tuple[ResourceKind, str], dict[str, Any]] = {}
        self._by_id: dict[str, tuple[ResourceKind, str]] = {}
        self._lock = threading.Lock()

    def get_provider_type(self) -> str:
        return "memory"

    @property
    def resources(self) -> dict[str, dict[str, Any]]:
        """Stored resources keyed by logical name."""
        with self._lock:
            return {name: dict(entry) for (_, name), entry in self._resources.items()}

    def lookup(self, spec: ResourceSpec) -> str | None:
        with self._lock:
            entry = self._resources.get((spec.kind, spec.logical_name))
            return entry["resource_id"] if entry else None

    def create(self, spec: ResourceSpec) -> CallResult:
        self._record("create", spec)
        resource_id, attributes = self._attributes_for(spec)
        with self._lock:
            self._resources[(spec.kind, spec.logical_name)] = {
                "resource_id": resource_id,
                "properties": dict(spec.properties),
                "attributes": attributes,
            }
            self._by_id[resource_id] = (spec.kind, spec.logical_name)
        logger.debug("Created %s '%s' as %s", spec.kind.value, spec.logical_name, resource_id)
        return CallResult(resource_id=resource_id, attributes=dict(attributes))

    def update(self, resource_id: str, spec: ResourceSpec) -> CallResult:
        self._record("update", spec)
        with self._lock:
            key = self._by_id.get(resource_id)
            if key is None:
                raise RemoteCallFailure(spec.logical_name, f"resource {resource_id} does not exist")
            entry = self._resources[key]
            if entry["properties"] == dict(spec.properties):
                logger.debug("'%s' already up to date", spec.logical_name)
                return CallResult(resource_id=resource_id, attributes=dict(entry["attributes"]))

        _, attributes = self._attributes_for(spec)
        attributes["id"] = resource_id
        with self._lock:
            entry["properties"] = dict(spec.properties)
            entry["attributes"] = attributes
        logger.debug("Updated %s '%s'", spec.kind.value, spec.logical_name)
        return CallResult(resource_id=resource_id, attributes=dict(attributes))

    def delete(self, resource_id: str) -> None:
        with self._lock:
            key = self._by_id.pop(resource_id, None)
            if key is None:
                return
            self._resources.pop(key, None)
            self.calls.append(("delete", key[1]))

    def _record(self, operation: str, spec: ResourceSpec) -> None:
        with self._lock:
            self.calls.append((operation, spec.logical_name))
        if self.delay:
            time.sleep(self.delay)
        reason = self.failures.get(spec.logical_name)
        if reason is not None:
            raise RemoteCallFailure(spec.logical_name, reason)

    def _attributes_for(self, spec: ResourceSpec) -> tuple[str, dict[str, Any]]:
        """Derive the identifier and attributes the control plane would assign."""
        region = self.config.region
        account = self.config.account_id
        props = spec.properties
        kind = spec.kind
        name = props.get("name") or spec.logical_name
        generated = _short_id(kind.value, spec.logical_name)
        attributes: dict[str, Any] = {}

        if kind is ResourceKind.ROLE:
            resource_id = name
            attributes = {"name": name, "arn": f"arn:aws:iam::{account}:role/{name}"}
        elif kind is ResourceKind.POLICY_ATTACHMENT:
            resource_id = f"{props.get('role')}-{generated}"
            attributes = {"role": props.get("role"), "policy_arn": props.get("policy_arn")}
        elif kind is ResourceKind.FUNCTION:
            resource_id = name
            attributes = {
                "name": name,
                "arn": f"arn:aws:lambda:{region}:{account}:function:{name}",
                "version": "$LATEST",
            }
        elif kind is ResourceKind.TABLE:
            resource_id = name
            arn = f"arn:aws:dynamodb:{region}:{account}:table/{name}"
            attributes = {"name": name, "arn": arn}
            if props.get("stream_enabled"):
                attributes["stream_arn"] = f"{arn}/stream/{generated}"
                attributes["stream_label"] = generated
        elif kind is ResourceKind.BUCKET:
            bucket = props.get("bucket") or spec.logical_name
            resource_id = bucket
            attributes = {
                "bucket": bucket,
                "arn": f"arn:aws:s3:::{bucket}",
                "bucket_domain_name": f"{bucket}.s3.amazonaws.com",
            }
        elif kind is ResourceKind.REST_API:
            resource_id = generated
            attributes = {
                "name": name,
                "root_resource_id": _short_id("root", generated, length=8),
                "execution_arn": f"arn:aws:execute-api:{region}:{account}:{generated}",
            }
        elif kind is ResourceKind.RESOURCE:
            resource_id = _short_id(kind.value, spec.logical_name, length=6)
            attributes = {"path": f"/{props.get('path_part')}"}
        elif kind is ResourceKind.METHOD:
            resource_id = f"{props.get('rest_api')}-{props.get('resource_id')}-{props.get('http_method')}"
            attributes = {"http_method": props.get("http_method")}
        elif kind is ResourceKind.INTEGRATION:
            resource_id = f"{props.get('rest_api')}-{props.get('resource_id')}-{props.get('http_method')}"
            attributes = {"uri": props.get("uri")}
        elif kind is ResourceKind.STAGE:
            stage_name = props.get("stage_name")
            resource_id = f"{props.get('rest_api')}-{stage_name}"
            attributes = {
                "stage_name": stage_name,
                "invoke_url": f"https://{props.get('rest_api')}.execute-api.{region}.amazonaws.com/{stage_name}",
            }
        elif kind is ResourceKind.PERMISSION:
            resource_id = props.get("statement_id") or generated
        elif kind is ResourceKind.STREAM_BINDING:
            resource_id = f"{generated[:8]}-{generated[8:]}"
            attributes = {"state": "Enabled", "uuid": resource_id}
        else:
            resource_id = generated

        attributes.setdefault("id", resource_id)
        if self.config.tags and kind in (ResourceKind.FUNCTION, ResourceKind.TABLE, ResourceKind.BUCKET, ResourceKind.ROLE):
            attributes["tags_all"] = {**self.config.tags, **(props.get("tags") or {})}
        return resource_id, attributes
