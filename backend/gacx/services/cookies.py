"""Codec for the "__utmx" and "__utmxx" experiment cookies.

Both cookies share one layout: a domain hash followed by one dot-separated
field per experiment.

    __utmx:  159991919.ft-5xaLPSturFXCPgoFrKg$0:1.ft-6uzLPSelrFQsPgouIkD$0:2
             [DOMAIN_HASH].[EXPERIMENT_ID]$[TAG]:[VARIATION].[...]

    __utmxx: 159991919.ft-5xaLPSturFXCPgoFrKg$0:1380888455:8035200
             [DOMAIN_HASH].[EXPERIMENT_ID]$[TAG]:[TIMESTAMP]:[TTL][:TRAILING].[...]

Fields that do not parse are never an error. They are left out of lookups
and written back untouched, which is what the tracking client does as well.
"""
import re
from typing import List, NamedTuple, Optional, Tuple

from gacx.config import Settings
from gacx.schemas.experiment import CookieSpec
from gacx.services.hashing import generate_hash


UTMX_COOKIE = "__utmx"
UTMXX_COOKIE = "__utmxx"

FIELD_SEPARATOR = "."
EXPERIMENT_SEPARATOR = "$"
VALUE_SEPARATOR = ":"
DEFAULT_TAG = "0"

# Hardcoded in the tracking client, must not be made configurable
TIMESTAMP_TTL = "8035200"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class AssignmentField(NamedTuple):
    experiment_id: str
    tag: str
    variation: str


class TimestampField(NamedTuple):
    experiment_id: str
    tag: str
    timestamp: str
    ttl: str
    trailing: str = ""


def _split_experiment(field: str) -> Optional[Tuple[str, str, str]]:
    """Split "ID$TAG:REST" into its parts, None if the field doesn't match."""
    experiment_id, sep, rest = field.partition(EXPERIMENT_SEPARATOR)
    if not experiment_id or not sep:
        return None

    tag, sep, rest = rest.partition(VALUE_SEPARATOR)
    if not tag or not sep:
        return None

    return experiment_id, tag, rest


def parse_assignment_field(field: str) -> Optional[AssignmentField]:
    """Parse one "__utmx" experiment field."""
    parts = _split_experiment(field)
    if parts is None:
        return None
    return AssignmentField(*parts)


def parse_timestamp_field(field: str) -> Optional[TimestampField]:
    """Parse one "__utmxx" experiment field."""
    parts = _split_experiment(field)
    if parts is None:
        return None
    experiment_id, tag, rest = parts

    timestamp, sep, rest = rest.partition(VALUE_SEPARATOR)
    if not timestamp or not sep:
        return None

    # The optional trailing part is not used by the client as of now
    ttl, _, trailing = rest.partition(VALUE_SEPARATOR)
    if not ttl:
        return None

    return TimestampField(experiment_id, tag, timestamp, ttl, trailing)


def parse_variation(value: str) -> int:
    """
    Read the variation number of a "__utmx" field.

    Several "-"-separated variations may be stored, which is deprecated;
    only the first counts. A value without a leading integer reads as 0.
    """
    first = value.split("-", 1)[0]
    match = _LEADING_INT.match(first)
    return int(match.group(1)) if match else 0


def _split_cookie(value: Optional[str]) -> Optional[Tuple[str, List[str]]]:
    """Split a cookie value into (domain hash, experiment fields)."""
    fields = (value or "").split(FIELD_SEPARATOR)
    if len(fields) < 2:
        return None
    return fields[0], fields[1:]


def _join_cookie(domain_hash: str, fields: List[str]) -> str:
    return FIELD_SEPARATOR.join([domain_hash] + fields)


def _format_assignment_field(field: AssignmentField) -> str:
    return f"{field.experiment_id}{EXPERIMENT_SEPARATOR}{field.tag}{VALUE_SEPARATOR}{field.variation}"


def _format_timestamp_field(field: TimestampField) -> str:
    value = VALUE_SEPARATOR.join([field.timestamp, field.ttl])
    if field.trailing:
        value += VALUE_SEPARATOR + field.trailing
    return f"{field.experiment_id}{EXPERIMENT_SEPARATOR}{field.tag}{VALUE_SEPARATOR}{value}"


def decode_variation(utmx: Optional[str], experiment_id: str) -> Optional[int]:
    """
    Look up the variation stored for an experiment in a "__utmx" value.

    Args:
        utmx: Raw "__utmx" cookie value (None or empty if not set)
        experiment_id: Experiment to look up

    Returns:
        Stored variation number, or None if the experiment has no field
    """
    cookie = _split_cookie(utmx)
    if cookie is None:
        return None

    _, fields = cookie
    for raw in fields:
        field = parse_assignment_field(raw)
        if field is not None and field.experiment_id == experiment_id:
            return parse_variation(field.variation)

    return None


def update_assignment_cookie(
    utmx: Optional[str],
    experiment_id: str,
    variation: int,
    domain_name: str,
) -> str:
    """
    Store a variation for an experiment in a "__utmx" value.

    An existing field for the experiment gets its variation replaced, its
    tag is kept. Otherwise a new field is appended. The domain hash of an
    existing value is reused, a new value gets the hash of domain_name.

    Returns:
        New "__utmx" cookie value
    """
    cookie = _split_cookie(utmx)
    if cookie is None:
        new_field = AssignmentField(experiment_id, DEFAULT_TAG, str(variation))
        return _join_cookie(str(generate_hash(domain_name)), [_format_assignment_field(new_field)])

    domain_hash, fields = cookie
    found = False
    updated = []
    for raw in fields:
        field = parse_assignment_field(raw)
        if field is not None and field.experiment_id == experiment_id:
            found = True
            raw = _format_assignment_field(field._replace(variation=str(variation)))
        updated.append(raw)

    if not found:
        new_field = AssignmentField(experiment_id, DEFAULT_TAG, str(variation))
        updated.append(_format_assignment_field(new_field))

    return _join_cookie(domain_hash, updated)


def update_timestamp_cookie(
    utmxx: Optional[str],
    experiment_id: str,
    now: int,
    domain_name: str,
) -> str:
    """
    Store the assignment time for an experiment in a "__utmxx" value.

    An existing field for the experiment only gets a new timestamp; tag,
    TTL and trailing part are kept as they are. New fields always carry
    the client's fixed TTL.

    Returns:
        New "__utmxx" cookie value
    """
    cookie = _split_cookie(utmxx)
    if cookie is None:
        new_field = TimestampField(experiment_id, DEFAULT_TAG, str(now), TIMESTAMP_TTL)
        return _join_cookie(str(generate_hash(domain_name)), [_format_timestamp_field(new_field)])

    domain_hash, fields = cookie
    found = False
    updated = []
    for raw in fields:
        field = parse_timestamp_field(raw)
        if field is not None and field.experiment_id == experiment_id:
            found = True
            raw = _format_timestamp_field(field._replace(timestamp=str(now)))
        updated.append(raw)

    if not found:
        new_field = TimestampField(experiment_id, DEFAULT_TAG, str(now), TIMESTAMP_TTL)
        updated.append(_format_timestamp_field(new_field))

    return _join_cookie(domain_hash, updated)


def build_cookies(
    utmx: str,
    utmxx: str,
    domain_name: str,
    now: int,
    settings: Settings,
) -> List[CookieSpec]:
    """Describe both cookies the way the tracking client would set them."""
    expires = now + settings.cookie_expiration_seconds
    return [
        CookieSpec(
            name=name,
            value=value,
            expires=expires,
            path=settings.cookie_path,
            domain=FIELD_SEPARATOR + domain_name,
        )
        for name, value in ((UTMX_COOKIE, utmx), (UTMXX_COOKIE, utmxx))
    ]
