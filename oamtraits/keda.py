"""Turns Autoscaler triggers into KEDA ScaledObject resources."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from oamtraits.autoscaler_api import Autoscaler, Trigger, TriggerType
from oamtraits.core import GroupVersion

KEDA_GROUP_VERSION = GroupVersion("keda.sh", "v1alpha1")
SCALED_OBJECT_KIND = "ScaledObject"

CRON_TYPE = TriggerType.CRON
CPU_TYPE = TriggerType.CPU

REASON_PARSE_REPLICAS = "parse replica failed"

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class SpecWarning(str, Enum):
    """Reasons reported when a cron trigger is not usable."""

    TARGET_WORKLOAD_NOT_SET = "Spec.targetWorkload is not set"
    START_AT_TIME_FORMAT = "startAt is not in the right format, which should be like `12:01`"
    START_AT_TIME_REQUIRED = "spec.triggers.condition.startAt: Required value"
    DURATION_TIME_REQUIRED = "spec.triggers.condition.duration: Required value"
    REPLICAS_REQUIRED = "spec.triggers.condition.replicas: Required value"
    DURATION_TIME_NOT_IN_RIGHT_FORMAT = "spec.triggers.condition.duration: not in the right format"


class CronTriggerError(ValueError):
    """A cron trigger could not be converted; ``reason`` names the problem."""

    def __init__(self, message: str, reason: str = "") -> None:
        super().__init__(message)
        self.reason = reason


@dataclass
class CronTypeCondition:
    """Settings of a cron trigger."""

    start_at: str = ""
    duration: str = ""
    days: str = ""
    replicas: str = ""
    timezone: str = ""

    _KEYS = {
        "startat": "start_at",
        "duration": "duration",
        "days": "days",
        "replicas": "replicas",
        "timezone": "timezone",
    }

    @classmethod
    def from_mapping(cls, condition: Mapping[str, str]) -> CronTypeCondition:
        """Read the settings; keys match case-insensitively, later keys in sorted order win."""
        values: dict[str, str] = {}
        for key, value in sorted(condition.items()):
            attribute = cls._KEYS.get(key.lower())
            if attribute is not None:
                values[attribute] = str(value)
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})


_NANOSECOND = 1
_MINUTE = 60 * 10**9
_HOUR = 60 * _MINUTE
_DURATION_UNITS = {
    "ns": _NANOSECOND,
    "us": 10**3,
    "µs": 10**3,
    "μs": 10**3,
    "ms": 10**6,
    "s": 10**9,
    "m": _MINUTE,
    "h": _HOUR,
}
_DURATION_PART = re.compile(r"(\d*\.?\d*)(ns|us|µs|μs|ms|s|m|h)")
_MAX_DURATION = 2**63 - 1
_START_AT = re.compile(r"(\d{1,2}):(\d{2})")
_INTEGER = re.compile(r"[+-]?\d+")


def _parse_duration(text: str) -> int:
    """Parse a duration such as ``1h30m`` or ``1.5h`` into nanoseconds."""
    invalid = ValueError(f'time: invalid duration "{text}"')
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0
    if not rest:
        raise invalid
    total = Decimal(0)
    position = 0
    while position < len(rest):
        match = _DURATION_PART.match(rest, position)
        if match is None or match.group(1) in ("", "."):
            raise invalid
        try:
            total += Decimal(match.group(1)) * _DURATION_UNITS[match.group(2)]
        except InvalidOperation as err:
            raise invalid from err
        position = match.end()
    nanoseconds = int(total)
    if nanoseconds > _MAX_DURATION:
        raise invalid
    return -nanoseconds if negative else nanoseconds


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _trunc_mod(a: int, b: int) -> int:
    return a - b * _trunc_div(a, b)


def _parse_start(start_at: str) -> tuple[int, int]:
    match = _START_AT.fullmatch(start_at)
    if match is None:
        raise ValueError(f'parsing time "{start_at}" as "15:04": cannot parse')
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour >= 24 or minute >= 60:
        raise ValueError(f'parsing time "{start_at}": value out of range')
    return hour, minute


def _parse_replicas(text: str) -> int:
    if _INTEGER.fullmatch(text) is None:
        raise ValueError(f'strconv.Atoi: parsing "{text}": invalid syntax')
    value = int(text)
    if not -(2**63) <= value < 2**63:
        raise ValueError(f'strconv.Atoi: parsing "{text}": value out of range')
    return value


def _weekday_number(day: str) -> int:
    for number, name in enumerate(WEEKDAYS):
        if name.casefold() == day.casefold():
            return number
    raise CronTriggerError(
        f"wrong format {day}, should be one of [{' '.join(WEEKDAYS)}]", ""
    )


def _type_name(value: TriggerType | str) -> str:
    return value.value if isinstance(value, TriggerType) else str(value)


def _scale_trigger(type_name: str, name: str, metadata: Mapping[str, str]) -> dict[str, Any]:
    trigger: dict[str, Any] = {"type": type_name}
    if name:
        trigger["name"] = name
    trigger["metadata"] = dict(metadata)
    return trigger


def prepare_cron_triggers(scaler: Autoscaler, trigger: Trigger) -> list[dict[str, Any]]:
    """Expand one cron trigger into a KEDA cron trigger per configured day."""
    if not scaler.spec.target_workload.name:
        raise CronTriggerError(
            SpecWarning.TARGET_WORKLOAD_NOT_SET.value, SpecWarning.TARGET_WORKLOAD_NOT_SET
        )
    condition = CronTypeCondition.from_mapping(trigger.condition)
    if not condition.start_at:
        raise CronTriggerError(
            SpecWarning.START_AT_TIME_REQUIRED.value, SpecWarning.START_AT_TIME_REQUIRED
        )
    if not condition.duration:
        raise CronTriggerError(
            SpecWarning.DURATION_TIME_REQUIRED.value, SpecWarning.DURATION_TIME_REQUIRED
        )
    try:
        start_hour, start_minute = _parse_start(condition.start_at)
    except ValueError as err:
        raise CronTriggerError(str(err), SpecWarning.START_AT_TIME_FORMAT) from err
    try:
        duration = _parse_duration(condition.duration)
    except ValueError as err:
        raise CronTriggerError(str(err), SpecWarning.DURATION_TIME_NOT_IN_RIGHT_FORMAT) from err

    duration_hours = _trunc_div(duration, _HOUR)
    duration_minutes = _trunc_mod(_trunc_div(duration, _MINUTE), 60)
    end_minute = start_minute + duration_minutes
    end_hour = duration_hours + start_hour
    if end_minute >= 60:
        end_minute %= 60
        end_hour += 1
    one_more_day = 0
    if end_hour >= 24:
        end_hour %= 24
        one_more_day = 1

    try:
        replicas = _parse_replicas(condition.replicas)
    except ValueError as err:
        raise CronTriggerError(str(err), REASON_PARSE_REPLICAS) from err
    if replicas == 0:
        raise CronTriggerError(SpecWarning.REPLICAS_REQUIRED.value, SpecWarning.REPLICAS_REQUIRED)

    days = [day.strip() for day in condition.days.split(",")]
    numbers = [_weekday_number(day) for day in days]

    type_name = _type_name(trigger.type)
    return [
        _scale_trigger(
            type_name,
            f"{trigger.name}-{day}",
            {
                "timezone": condition.timezone,
                "start": f"{start_minute} {start_hour} * * {number}",
                "end": f"{end_minute} {end_hour} * * {(number + one_more_day) % 7}",
                "desiredReplicas": str(replicas),
            },
        )
        for day, number in zip(days, numbers)
    ]


def build_keda_triggers(scaler: Autoscaler) -> list[dict[str, Any]]:
    """Convert every trigger of the scaler; non-cron triggers pass through as they are."""
    triggers: list[dict[str, Any]] = []
    for trigger in scaler.spec.triggers:
        if trigger.type == CRON_TYPE:
            triggers.extend(prepare_cron_triggers(scaler, trigger))
        else:
            triggers.append(_scale_trigger(_type_name(trigger.type), trigger.name, trigger.condition))
    return triggers


def render_scaled_object(scaler: Autoscaler, namespace: str) -> dict[str, Any]:
    """Build the ScaledObject owned by ``scaler`` in ``namespace``."""
    target = scaler.spec.target_workload
    spec: dict[str, Any] = {"scaleTargetRef": target.to_dict()}
    if scaler.spec.min_replicas is not None:
        spec["minReplicaCount"] = scaler.spec.min_replicas
    if scaler.spec.max_replicas is not None:
        spec["maxReplicaCount"] = scaler.spec.max_replicas
    spec["triggers"] = build_keda_triggers(scaler)
    name = scaler.metadata.name
    return {
        "apiVersion": str(KEDA_GROUP_VERSION),
        "kind": SCALED_OBJECT_KIND,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "ownerReferences": [
                {
                    "apiVersion": scaler.api_version,
                    "kind": scaler.kind,
                    "name": name,
                    "uid": scaler.metadata.uid,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ],
        },
        "spec": spec,
    }