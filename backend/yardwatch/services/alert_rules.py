"""
Rules for saved-search alerts: payload validation, year ranges, the
new-vehicle diff and the notification text.

Year ranges are read two ways on purpose. ``derive_year_range(strict=True)``
is the creation path and rejects bad input. The default lenient path reads
records back from storage (possibly written by older code) and repairs
them: out-of-range years become open bounds and reversed bounds are swapped.
"""
import math
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from yardwatch.errors import ValidationError

MIN_VEHICLE_YEAR = 1900
MAX_VEHICLE_YEAR = 2100
MAX_MAKE_LENGTH = 48
MAX_MODEL_LENGTH = 64

# Fields that make a row "the same vehicle" between two checks
INVENTORY_KEY_FIELDS = ("yardId", "year", "make", "model", "row")


class YearRange(NamedTuple):
    min_year: Optional[int]
    max_year: Optional[int]

    @property
    def is_open(self) -> bool:
        return self.min_year is None and self.max_year is None


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def parse_optional_year(value: Any, strict: bool = False) -> Optional[int]:
    """
    Parse a model year. Blank means "no bound".

    Raises:
        ValidationError: strict mode only, for non-integers and years outside 1900-2100
    """
    text = normalize_text(value)
    if not text:
        return None

    try:
        number = float(text)
    except ValueError:
        number = math.nan

    valid = (
        math.isfinite(number)
        and number.is_integer()
        and MIN_VEHICLE_YEAR <= number <= MAX_VEHICLE_YEAR
    )
    if not valid:
        if strict:
            raise ValidationError(f"Vehicle year must be between {MIN_VEHICLE_YEAR} and {MAX_VEHICLE_YEAR}.")
        return None
    return int(number)


def derive_year_range(source: Optional[Mapping[str, Any]], strict: bool = False) -> YearRange:
    """
    Read minYear/maxYear (or a single year) from a payload or stored record.

    A lone ``year`` fills whichever bound is missing, so a single target year
    becomes ``min_year == max_year``.
    """
    source = source or {}
    min_year = parse_optional_year(_first(source, "minYear", "VehicleMinYear", "min_year"), strict=strict)
    max_year = parse_optional_year(_first(source, "maxYear", "VehicleMaxYear", "max_year"), strict=strict)
    single_year = parse_optional_year(_first(source, "year", "VehicleYear"), strict=strict)

    low = min_year if min_year is not None else single_year
    high = max_year if max_year is not None else single_year

    if low is not None and high is not None and low > high:
        if strict:
            raise ValidationError("Minimum year must not be after maximum year")
        low, high = high, low

    return YearRange(low, high)


def search_terms(search: Mapping[str, Any]) -> Tuple[str, str]:
    """(make, model) of a stored search, accepting the legacy Vehicle* keys"""
    make = normalize_text(_first(search, "make", "VehicleMake"))
    model = normalize_text(_first(search, "model", "VehicleModel"))
    return make, model


def normalize_subscription(subscription: Any) -> Optional[Dict[str, str]]:
    """
    Flatten a browser PushSubscription ({endpoint, keys: {auth, p256dh}}).
    Returns None unless all three parts are present.
    """
    if not isinstance(subscription, Mapping):
        return None

    keys = subscription.get("keys")
    keys = keys if isinstance(keys, Mapping) else {}
    endpoint = normalize_text(subscription.get("endpoint"))
    auth = normalize_text(keys.get("auth") or subscription.get("auth"))
    p256dh = normalize_text(keys.get("p256dh") or subscription.get("p256dh"))

    if not endpoint or not auth or not p256dh:
        return None
    return {"endpoint": endpoint, "auth": auth, "p256dh": p256dh}


def validate_alert_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Strictly validate a create-alert request body.

    Returns:
        Normalized fields: make, model, year, minYear, maxYear,
        pushEndpoint, pushAuth, pushP256dh

    Raises:
        ValidationError: on any missing or malformed field
    """
    make = normalize_text(_first(payload, "make", "VehicleMake"))
    model = normalize_text(_first(payload, "model", "VehicleModel"))

    if not make:
        raise ValidationError("Make is required")
    if len(make) > MAX_MAKE_LENGTH:
        raise ValidationError(f"Make must be {MAX_MAKE_LENGTH} characters or less")
    if len(model) > MAX_MODEL_LENGTH:
        raise ValidationError(f"Model must be {MAX_MODEL_LENGTH} characters or less")

    year_range = derive_year_range(payload, strict=True)

    subscription = normalize_subscription(_first(payload, "subscription", "pushSubscription"))
    if subscription:
        endpoint, auth, p256dh = subscription["endpoint"], subscription["auth"], subscription["p256dh"]
    else:
        endpoint = normalize_text(payload.get("pushEndpoint"))
        auth = normalize_text(payload.get("pushAuth"))
        p256dh = normalize_text(payload.get("pushP256dh"))

    if not endpoint or not auth or not p256dh:
        raise ValidationError("Push subscription (endpoint, auth, p256dh) is required")

    single_year = year_range.min_year if year_range.min_year is not None and year_range.min_year == year_range.max_year else None

    return {
        "make": make,
        "model": model,
        "year": single_year,
        "minYear": year_range.min_year,
        "maxYear": year_range.max_year,
        "pushEndpoint": endpoint,
        "pushAuth": auth,
        "pushP256dh": p256dh,
    }


def is_same_search(existing: Mapping[str, Any], candidate: Mapping[str, Any]) -> bool:
    """Duplicate check: make, model (case-insensitive), year range and push endpoint"""
    existing_make, existing_model = search_terms(existing)
    candidate_make, candidate_model = search_terms(candidate)
    return (
        existing_make.casefold() == candidate_make.casefold()
        and existing_model.casefold() == candidate_model.casefold()
        and derive_year_range(existing) == derive_year_range(candidate)
        and normalize_text(existing.get("pushEndpoint")) == normalize_text(candidate.get("pushEndpoint"))
    )


def inventory_key(row: Mapping[str, Any]) -> str:
    """Stable identity of a vehicle: yardId:year:make:model:row"""
    return ":".join("" if row.get(field) is None else str(row.get(field)) for field in INVENTORY_KEY_FIELDS)


def diff_new_vehicles(current: Optional[Iterable[Mapping]], previous: Optional[Iterable[Mapping]]) -> List[Mapping]:
    """
    Rows of ``current`` whose identity key is not in ``previous``.
    Removed and unchanged vehicles are not reported.
    """
    previous_keys = {inventory_key(row) for row in (previous or [])}
    return [row for row in (current or []) if inventory_key(row) not in previous_keys]


def filter_by_year_range(rows: Iterable[Mapping], year_range: YearRange) -> List[Mapping]:
    """Keep rows inside the inclusive range; a None bound is open on that side"""
    if year_range.is_open:
        return list(rows)

    kept = []
    for row in rows:
        year = parse_optional_year(row.get("year"))
        if year is None:
            continue
        if year_range.min_year is not None and year < year_range.min_year:
            continue
        if year_range.max_year is not None and year > year_range.max_year:
            continue
        kept.append(row)
    return kept


def redact_search(search: Mapping[str, Any]) -> Dict[str, Any]:
    """Client view of a saved search; push credentials never leave the server"""
    make, model = search_terms(search)
    return {
        "id": search.get("id"),
        "make": make,
        "model": model,
        "year": _first(search, "year", "VehicleYear"),
        "minYear": _first(search, "minYear", "VehicleMinYear"),
        "maxYear": _first(search, "maxYear", "VehicleMaxYear"),
        "hasPush": bool(search.get("pushEndpoint")),
        "createdAt": search.get("createdAt"),
        "lastNotifiedAt": search.get("lastNotifiedAt") or None,
        "lastNotificationStatus": search.get("lastNotificationStatus") or None,
    }


def describe_year_range(search: Mapping[str, Any]) -> str:
    year_range = derive_year_range(search)
    low, high = year_range
    if year_range.is_open:
        return "All years"
    if low is not None and high is not None:
        return f"{low}" if low == high else f"{low}-{high}"
    if low is not None:
        return f"{low}+"
    return f"up to {high}"


def build_notification_payload(search: Mapping[str, Any], new_vehicles: List[Mapping]) -> Dict[str, Any]:
    make, model = search_terms(search)
    detail = f"{describe_year_range(search)} {make}" + (f" {model}" if model else "")

    yard_names = []
    for row in new_vehicles:
        name = normalize_text(row.get("yardName"))
        if name and name not in yard_names:
            yard_names.append(name)
    yards = ", ".join(yard_names)

    return {
        "title": f"YardWatch: {detail}",
        "body": f"{len(new_vehicles)} new arrival(s) at {yards or 'unknown yard'}.",
        "data": {
            "alertId": search.get("id"),
            "count": len(new_vehicles),
            "yards": yards,
        },
    }
