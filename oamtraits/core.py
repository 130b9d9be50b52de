"""Shared object model for trait controllers: group versions, references,
status conditions, reconcile results and an object store client."""

from __future__ import annotations

import abc
import copy
import uuid
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with its version."""

    group: str
    version: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def parse(cls, api_version: str) -> GroupVersion:
        """Split an ``apiVersion`` string such as ``apps/v1`` or ``v1``."""
        if not api_version or api_version == "/":
            return cls("", "")
        parts = api_version.split("/")
        if len(parts) == 1:
            return cls("", parts[0])
        if len(parts) == 2:
            return cls(parts[0], parts[1])
        raise ValueError(f"unexpected GroupVersion string: {api_version}")


STANDARD_GROUP_VERSION = GroupVersion("standard.oam.dev", "v1alpha1")
CORE_GROUP_VERSION = GroupVersion("core.oam.dev", "v1alpha2")
EXTEND_GROUP_VERSION = GroupVersion("extend.oam.dev", "v1alpha2")


class GroupVersionKind(NamedTuple):
    """Group, version and kind of an object."""

    group: str
    version: str
    kind: str

    @property
    def group_version(self) -> GroupVersion:
        return GroupVersion(self.group, self.version)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Kind={self.kind}"


def group_version_kind(obj: Mapping[str, Any]) -> GroupVersionKind:
    """Return the group, version and kind of an object held as a mapping.

    An unparsable ``apiVersion`` yields an empty result.
    """
    try:
        gv = GroupVersion.parse(obj.get("apiVersion", "") or "")
    except ValueError:
        return GroupVersionKind("", "", "")
    return GroupVersionKind(gv.group, gv.version, obj.get("kind", "") or "")


@dataclass
class TypedReference:
    """A reference to an object by API version, kind, name and UID."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}
        if self.uid:
            data["uid"] = self.uid
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> TypedReference:
        data = data or {}
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
        )


class ConditionType(str, Enum):
    READY = "Ready"
    SYNCED = "Synced"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


REASON_RECONCILE_ERROR = "ReconcileError"
REASON_RECONCILE_SUCCESS = "ReconcileSuccess"

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True)
class Condition:
    """One observed condition; the transition time is ignored in comparisons."""

    type: ConditionType
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = field(default_factory=_now, compare=False)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "type": self.type.value,
            "status": self.status.value,
            "lastTransitionTime": self.last_transition_time.astimezone(timezone.utc).strftime(_TIME_FORMAT),
            "reason": self.reason,
        }
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Condition:
        stamp = data.get("lastTransitionTime")
        when = (
            datetime.strptime(stamp, _TIME_FORMAT).replace(tzinfo=timezone.utc)
            if stamp
            else _now()
        )
        return cls(
            type=ConditionType(data["type"]),
            status=ConditionStatus(data.get("status", ConditionStatus.UNKNOWN.value)),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=when,
        )


@dataclass
class ConditionedStatus:
    """A status holding at most one condition of each type."""

    conditions: list[Condition] = field(default_factory=list)

    def set_conditions(self, *args: Condition) -> None:
        """Add or replace conditions; an equal condition is left untouched."""
        for new in args:
            for position, existing in enumerate(self.conditions):
                if existing.type != new.type:
                    continue
                if existing != new:
                    self.conditions[position] = new
                break
            else:
                self.conditions.append(new)

    def get_condition(self, condition_type: ConditionType) -> Condition:
        """Return the condition of that type, or an unknown one."""
        return next(
            (c for c in self.conditions if c.type == condition_type),
            Condition(condition_type, ConditionStatus.UNKNOWN),
        )

    def to_dict(self) -> dict[str, Any]:
        if not self.conditions:
            return {}
        return {"conditions": [c.to_dict() for c in self.conditions]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ConditionedStatus:
        data = data or {}
        return cls([Condition.from_dict(c) for c in data.get("conditions") or []])


def reconcile_error(error: BaseException | str) -> Condition:
    """A condition saying the last reconcile failed with ``error``."""
    return Condition(
        ConditionType.SYNCED, ConditionStatus.FALSE, REASON_RECONCILE_ERROR, str(error)
    )


def reconcile_success() -> Condition:
    """A condition saying the last reconcile succeeded."""
    return Condition(ConditionType.SYNCED, ConditionStatus.TRUE, REASON_RECONCILE_SUCCESS)


@dataclass
class ObjectMeta:
    """Name, namespace, UID, labels and owners of an object."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    owner_references: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name:
            data["name"] = self.name
        if self.namespace:
            data["namespace"] = self.namespace
        if self.uid:
            data["uid"] = self.uid
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.owner_references:
            data["ownerReferences"] = copy.deepcopy(self.owner_references)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ObjectMeta:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            uid=data.get("uid", ""),
            labels=dict(data.get("labels") or {}),
            owner_references=copy.deepcopy(list(data.get("ownerReferences") or [])),
        )


@dataclass(frozen=True)
class ObjectKey:
    """Identifies an object by name within a namespace."""

    name: str
    namespace: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass(frozen=True)
class Result:
    """Outcome of one reconcile; ``requeue_after`` is in seconds."""

    requeue_after: float | None = None


RECONCILE_WAIT_RESULT = Result(requeue_after=30.0)


class ClientError(Exception):
    """Base class of errors raised by a client."""


class NotFoundError(ClientError, LookupError):
    """The requested object does not exist."""


class AlreadyExistsError(ClientError):
    """An object with the same identity already exists."""


class AlreadyOwnedError(ValueError):
    """The object is already controlled by another owner."""


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, Mapping):
        return copy.deepcopy(dict(obj))
    return obj.to_dict()


def set_controller_reference(owner: Any, obj: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Mark ``owner`` as the controller of ``obj`` and return ``obj``."""
    owner_data = _as_dict(owner)
    owner_meta = owner_data.get("metadata") or {}
    meta = obj.setdefault("metadata", {})
    owner_namespace = owner_meta.get("namespace", "")
    if owner_namespace:
        obj_namespace = meta.get("namespace", "")
        if not obj_namespace:
            raise ValueError(
                "cluster-scoped resource must not have a namespace-scoped owner, "
                f"owner's namespace {owner_namespace}"
            )
        if obj_namespace != owner_namespace:
            raise ValueError(
                "cross-namespace owner references are disallowed, "
                f"owner's namespace {owner_namespace}, obj's namespace {obj_namespace}"
            )

    reference = {
        "apiVersion": owner_data.get("apiVersion", ""),
        "kind": owner_data.get("kind", ""),
        "name": owner_meta.get("name", ""),
        "uid": owner_meta.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }

    def same_owner(ref: Mapping[str, Any]) -> bool:
        try:
            group = GroupVersion.parse(ref.get("apiVersion", "")).group
        except ValueError:
            return False
        return (
            group == GroupVersion.parse(reference["apiVersion"]).group
            and ref.get("kind") == reference["kind"]
            and ref.get("name") == reference["name"]
        )

    references = meta.setdefault("ownerReferences", [])
    for existing in references:
        if existing.get("controller") and not same_owner(existing):
            raise AlreadyOwnedError(
                f"object {meta.get('namespace', '')}/{meta.get('name', '')} is already owned "
                f"by another {existing.get('kind')} controller {existing.get('name')}"
            )
    for position, existing in enumerate(references):
        if same_owner(existing):
            references[position] = reference
            break
    else:
        references.append(reference)
    return obj


class Client(abc.ABC):
    """Reads and writes objects held as mappings."""

    @abc.abstractmethod
    def get(self, api_version: str, kind: str, key: ObjectKey) -> dict[str, Any]:
        """Return the object; raise NotFoundError when missing."""

    @abc.abstractmethod
    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the objects of a kind, filtered by namespace and labels."""

    @abc.abstractmethod
    def create(self, obj: Any) -> dict[str, Any]:
        """Store a new object and return it as stored."""

    @abc.abstractmethod
    def update(self, obj: Any) -> dict[str, Any]:
        """Replace an existing object and return it as stored."""

    @abc.abstractmethod
    def apply(self, obj: Any, field_owner: str) -> dict[str, Any]:
        """Create or merge an object on behalf of ``field_owner``."""

    @abc.abstractmethod
    def delete(self, obj: Any) -> None:
        """Remove an object; raise NotFoundError when missing."""


_StoreKey = tuple[str, str, str, str]


def _merge(base: dict[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in patch.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


class MemoryClient(Client):
    """A client keeping objects in memory, assigning UIDs on creation."""

    def __init__(self, objects: Any = ()) -> None:
        self._store: dict[_StoreKey, dict[str, Any]] = {}
        for obj in objects:
            self.create(obj)

    @staticmethod
    def _key(data: Mapping[str, Any]) -> _StoreKey:
        meta = data.get("metadata") or {}
        name = meta.get("name")
        if not name:
            raise ValueError("object has no metadata.name")
        return (data.get("apiVersion", ""), data.get("kind", ""), meta.get("namespace", ""), name)

    @staticmethod
    def _not_found(kind: str, name: str) -> NotFoundError:
        return NotFoundError(f'{kind} "{name}" not found')

    def get(self, api_version, kind, key):
        stored = self._store.get((api_version, kind, key.namespace, key.name))
        if stored is None:
            raise self._not_found(kind, key.name)
        return copy.deepcopy(stored)

    def list(self, api_version, kind, namespace=None, labels=None):
        wanted = dict(labels or {})
        found = []
        for (av, k, ns, _), stored in sorted(self._store.items()):
            if av != api_version or k != kind:
                continue
            if namespace is not None and ns != namespace:
                continue
            have = (stored.get("metadata") or {}).get("labels") or {}
            if all(have.get(name) == value for name, value in wanted.items()):
                found.append(copy.deepcopy(stored))
        return found

    def create(self, obj):
        data = _as_dict(obj)
        key = self._key(data)
        if key in self._store:
            raise AlreadyExistsError(f'{key[1]} "{key[3]}" already exists')
        meta = data.setdefault("metadata", {})
        meta.setdefault("uid", str(uuid.uuid4()))
        if not meta["uid"]:
            meta["uid"] = str(uuid.uuid4())
        self._store[key] = data
        return copy.deepcopy(data)

    def update(self, obj):
        data = _as_dict(obj)
        key = self._key(data)
        existing = self._store.get(key)
        if existing is None:
            raise self._not_found(key[1], key[3])
        data.setdefault("metadata", {})["uid"] = existing["metadata"]["uid"]
        self._store[key] = data
        return copy.deepcopy(data)

    def apply(self, obj, field_owner):
        data = _as_dict(obj)
        key = self._key(data)
        existing = self._store.get(key)
        if existing is None:
            merged = data
            merged.setdefault("metadata", {})
            if not merged["metadata"].get("uid"):
                merged["metadata"]["uid"] = str(uuid.uuid4())
        else:
            uid = existing["metadata"]["uid"]
            merged = _merge(copy.deepcopy(existing), data)
            merged["metadata"]["uid"] = uid
        managers = merged["metadata"].setdefault("managedFields", [])
        entry = {"manager": str(field_owner), "operation": "Apply"}
        if entry not in managers:
            managers.append(entry)
        self._store[key] = merged
        return copy.deepcopy(merged)

    def delete(self, obj):
        key = self._key(_as_dict(obj))
        if self._store.pop(key, None) is None:
            raise self._not_found(key[1], key[3])