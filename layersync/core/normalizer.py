"""Field normalizer - maps raw provider records onto ``BusResult``.

Each source declares an alias profile: canonical key -> ordered list of
dot paths into the raw record. The first usable value wins, in the same
spirit as the API field mappings used by the network interceptor:

    'operator': ['travelsName', 'travels', 'operatorName']

Every helper here is total. Missing or wrong-typed input degrades to
``0``, ``''`` or ``()`` and never raises.
"""

import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from layersync.core.models import BusResult

FieldProfile = Dict[str, List[str]]

DIRECT_API_FIELDS: FieldProfile = {
    "id": ["routeId", "serviceId", "id"],
    "operator": ["travelsName", "travels", "operatorName"],
    "operator_id": ["operatorId"],
    "service_name": ["serviceName"],
    "bus_type": ["busType"],
    "departure": ["departureTime"],
    "arrival": ["arrivalTime"],
    "duration_minutes": ["journeyDurationMin"],
    "price": ["fareList.0", "fareList.0.baseFare", "fareList.0.fare", "fare", "baseFare"],
    "original_price": ["fareList.1", "fareList.0"],
    "rating": ["totalRatings", "rating", "busRating"],
    "number_of_reviews": ["numberOfReviews", "ratingCount"],
    "seats_available": ["availableSeats"],
    "total_seats": ["totalSeats"],
    "single_seats": ["availableSingleSeats", "availableWindowSeats"],
    "window_seats": ["availableWindowSeats"],
    "route_name": ["routeName"],
    "source": ["source"],
    "destination": ["destination"],
    "via_route": ["viaRt"],
    "boarding_point": ["standardBpName"],
    "dropping_point": ["standardDpName"],
    "boarding_points": ["boardingPoints", "bpList"],
    "dropping_points": ["droppingPoints", "dpList"],
    "amenities": ["amenities"],
    "is_ac": ["isAc"],
    "is_sleeper": ["isSleeper"],
    "is_seater": ["isSeater"],
    "is_electric_vehicle": ["isElectricVehicle"],
    "is_primo": ["rdBoostInfo.isPrimo", "isPrimo"],
    "on_time": ["persuasion.onTime"],
    "free_date_change": ["persuasion.freeDateChange", "isFreeDateChange"],
    "free_snacks": ["persuasion.freeSnacks"],
    "live_tracking": ["isLiveTrackingAvailable"],
    "offer_tag": ["operatorOfferCampaign.title", "operatorOfferCampaign.offerText"],
    "special_message": ["serviceNotes", "persuasion.message"],
    "cancellation_policy": ["cancellationPolicy"],
    "partial_cancellation": ["partialCancellationAllowed"],
    "is_sponsored": ["isSponsored"],
    "campaign_type": ["campaignType"],
}

# Intercepted search payloads use shorter, older field names
XHR_FIELDS: FieldProfile = {
    **DIRECT_API_FIELDS,
    "id": ["id", "busId", "serviceId"],
    "operator": ["travels", "travelsName", "operator", "busOperator"],
    "bus_type": ["busType", "busTypeName", "type"],
    "departure": ["departureTime", "depTime", "dt"],
    "arrival": ["arrivalTime", "arrTime", "at"],
    "duration_minutes": ["durationInMins", "duration"],
    "price": ["fare", "fares.0.totalFare", "baseFare"],
    "original_price": [],
    "rating": ["rating", "busRating", "ratings.overall"],
    "number_of_reviews": ["totalRatings", "ratingCount", "ratings.count"],
    "seats_available": ["availableSeats", "seatsAvailable", "availSeats"],
    "route_name": ["routeName", "route"],
    "boarding_points": ["boardingPoints", "bpList", "bp"],
    "dropping_points": ["droppingPoints", "dpList", "dp"],
    "is_ac": ["ac", "isAC", "isAc"],
    "is_sleeper": ["sleeper", "isSleeper"],
}

AMENITY_LABELS = {
    "wifi": "WiFi",
    "charging": "Charging Point",
    "water": "Water Bottle",
    "blanket": "Blanket",
    "tv": "TV",
    "ac": "A/C",
    "reading_light": "Reading Light",
    "track": "Live Tracking",
}

MAX_POINTS = 5

_POINT_NAME_KEYS = ("name", "location", "bpName", "dpName")
_AMENITY_NAME_KEYS = ("name", "amenity", "title")
_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})")
_COMPACT_CLOCK_RE = re.compile(r"^(\d{1,2})(\d{2})$")
_NON_AC_RE = re.compile(r"\bnon[\s-]*(a/c|ac)\b")
_AC_RE = re.compile(r"(a/c|\bac\b)")


def get_nested_value(data: Any, path: str) -> Any:
    """Read a dot path; numeric segments index into lists."""
    value = data
    try:
        for key in path.split("."):
            if isinstance(value, list):
                value = value[int(key)]
            else:
                value = value[key]
        return value
    except (KeyError, TypeError, IndexError, ValueError):
        return None


def _is_blank(value: Any) -> bool:
    """None, empty string, zero and False; the next alias is tried for these."""
    if value is None or value is False or value == "":
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def _first(raw: Mapping, paths: Iterable[str]) -> Any:
    for path in paths:
        value = get_nested_value(raw, path)
        if not _is_blank(value):
            return value
    return None


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, str):
        try:
            number = float(value.replace(",", "").strip())
        except ValueError:
            return None
        return None if math.isnan(number) or math.isinf(number) else number
    return None


def tidy_number(number: float) -> Any:
    """Integral floats become ints."""
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _first_number(raw: Mapping, paths: Iterable[str]) -> Optional[float]:
    for path in paths:
        number = as_number(get_nested_value(raw, path))
        if number is not None and number != 0:
            return tidy_number(number)
    return None


def _first_text(raw: Mapping, paths: Iterable[str]) -> str:
    for path in paths:
        value = get_nested_value(raw, path)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = stringify(value).strip()
        if text:
            return text
    return ""


def _first_bool(raw: Mapping, paths: Iterable[str]) -> Optional[bool]:
    for path in paths:
        value = get_nested_value(raw, path)
        if isinstance(value, bool):
            return value
    return None


def _count(raw: Mapping, paths: Iterable[str]) -> int:
    number = _first_number(raw, paths)
    if number is None or number < 0:
        return 0
    return int(number)


def stringify(value: Any) -> str:
    """Text coercion used for ids and layer writes.

    None -> '', booleans -> 'true'/'false', lists -> ', '-joined,
    integral floats lose their '.0'.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(v) for v in value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_clock(value: Any) -> Optional[Tuple[int, int]]:
    """Parse a departure/arrival value into (hours, minutes).

    Accepts 'HH:MM', datetimes like '2026-01-23 22:40:00', compact '2230'
    and numbers (minutes from midnight).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if value < 0:
            return None
        minutes = int(value) % 1440
        return minutes // 60, minutes % 60
    text = str(value).strip()
    match = _CLOCK_RE.search(text) or _COMPACT_CLOCK_RE.match(text)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours, minutes


def format_clock(clock: Optional[Tuple[int, int]]) -> str:
    if clock is None:
        return ""
    return f"{clock[0]:02d}:{clock[1]:02d}"


def duration_between(departure: Optional[Tuple[int, int]], arrival: Optional[Tuple[int, int]]) -> int:
    """Minutes from departure to arrival, wrapping past midnight."""
    if departure is None or arrival is None:
        return 0
    dep = departure[0] * 60 + departure[1]
    arr = arrival[0] * 60 + arrival[1]
    if arr < dep:
        arr += 24 * 60
    return arr - dep


def format_duration(minutes: int) -> str:
    if not minutes or minutes <= 0:
        return ""
    return f"{minutes // 60}h {minutes % 60}m"


def format_inr(amount: Any) -> str:
    """Rupee glyph plus Indian digit grouping: 123456.5 -> '₹1,23,456.5'."""
    number = as_number(amount)
    if number is None:
        number = 0
    sign = "-" if number < 0 else ""
    number = abs(number)
    whole = int(number)
    fraction = round(number - whole, 3)
    if fraction >= 1:
        whole, fraction = whole + 1, 0.0
    digits = str(whole)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    decimals = f"{fraction:.3f}"[1:].rstrip("0").rstrip(".") if fraction else ""
    return f"₹{sign}{digits}{decimals}"


def discount_label(price: float, original_price: float) -> str:
    """'N% OFF' when the original price is higher, else ''."""
    if not original_price or original_price <= price:
        return ""
    percent = round_half_up((1 - price / original_price) * 100)
    return f"{percent}% OFF" if percent > 0 else ""


def extract_points(points: Any) -> Tuple[str, ...]:
    """Display names of boarding/dropping points, at most five."""
    if not isinstance(points, list):
        return ()
    names: List[str] = []
    for point in points:
        if isinstance(point, str):
            name = point.strip()
        elif isinstance(point, dict):
            name = _first_text(point, _POINT_NAME_KEYS)
        else:
            name = ""
        if name:
            names.append(name)
        if len(names) >= MAX_POINTS:
            break
    return tuple(names)


def format_amenity_name(name: str) -> str:
    label = AMENITY_LABELS.get(name.lower())
    if label:
        return label
    return re.sub(r"([A-Z])", r" \1", name).strip()


def extract_amenities(amenities: Any) -> Tuple[str, ...]:
    """Amenity labels from a list of names/objects or a dict of flags."""
    labels: List[str] = []
    if isinstance(amenities, list):
        for amenity in amenities:
            if isinstance(amenity, str):
                labels.append(amenity.strip())
            elif isinstance(amenity, dict):
                labels.append(_first_text(amenity, _AMENITY_NAME_KEYS))
    elif isinstance(amenities, dict):
        labels = [format_amenity_name(str(key)) for key, flag in amenities.items() if flag is True]
    seen = set()
    ordered = []
    for label in labels:
        if label and label not in seen:
            seen.add(label)
            ordered.append(label)
    return tuple(ordered)


def is_ac_bus_type(bus_type: str) -> bool:
    lowered = bus_type.lower()
    if _NON_AC_RE.search(lowered):
        return False
    return bool(_AC_RE.search(lowered))


def _flag(raw: Mapping, paths: Iterable[str], derived: bool = False) -> bool:
    explicit = _first_bool(raw, paths)
    return derived if explicit is None else explicit


def normalize_bus(raw: Any, fields: FieldProfile = DIRECT_API_FIELDS) -> BusResult:
    """Convert one raw provider record into a ``BusResult``.

    Args:
        raw: Record as received (anything that is not a dict yields defaults)
        fields: Alias profile of the source that produced the record

    Returns:
        The canonical record.
    """
    if not isinstance(raw, dict):
        raw = {}

    departure = parse_clock(_first(raw, fields["departure"]))
    arrival = parse_clock(_first(raw, fields["arrival"]))
    explicit_minutes = _first_number(raw, fields["duration_minutes"])
    if explicit_minutes is not None and explicit_minutes > 0:
        duration_minutes = int(explicit_minutes)
    else:
        duration_minutes = duration_between(departure, arrival)

    price = _first_number(raw, fields["price"]) or 0
    original_price = _first_number(raw, fields["original_price"]) or price

    bus_type = _first_text(raw, fields["bus_type"])
    boarding_points = extract_points(_first(raw, fields["boarding_points"]))
    dropping_points = extract_points(_first(raw, fields["dropping_points"]))

    route = _first_text(raw, fields["route_name"])
    if not route:
        source = _first_text(raw, fields["source"])
        destination = _first_text(raw, fields["destination"])
        if source or destination:
            route = f"{source} to {destination}".strip()

    free_date_change = any(_first_bool(raw, [p]) for p in fields["free_date_change"])
    live_tracking = _flag(raw, fields["live_tracking"])
    tags = []
    if _flag(raw, fields["on_time"]):
        tags.append("On Time")
    if free_date_change:
        tags.append("Free date change")
    if _flag(raw, fields["free_snacks"]):
        tags.append("Free Snacks")
    if live_tracking:
        tags.append("Live Tracking")

    cancellation_policy = _first_text(raw, fields["cancellation_policy"])
    if not cancellation_policy and _flag(raw, fields["partial_cancellation"]):
        cancellation_policy = "Partial cancellation allowed"

    rating = _first(raw, fields["rating"])
    rating_text = stringify(rating) if isinstance(rating, (int, float, str)) and rating != "" else "0"

    return BusResult(
        id=_first_text(raw, fields["id"]),
        operator=_first_text(raw, fields["operator"]),
        operator_id=_first_text(raw, fields["operator_id"]),
        service_name=_first_text(raw, fields["service_name"]),
        bus_type=bus_type,
        is_ac=_flag(raw, fields["is_ac"], is_ac_bus_type(bus_type)),
        is_sleeper=_flag(raw, fields["is_sleeper"], "sleeper" in bus_type.lower()),
        is_seater=_flag(raw, fields["is_seater"], "seater" in bus_type.lower()),
        is_electric_vehicle=_flag(raw, fields["is_electric_vehicle"]),
        departure_time=format_clock(departure),
        arrival_time=format_clock(arrival),
        duration=format_duration(duration_minutes),
        duration_minutes=duration_minutes,
        price=price,
        price_formatted=format_inr(price),
        original_price=original_price,
        original_price_formatted=format_inr(original_price) if original_price > price else "",
        discount=discount_label(price, original_price),
        rating=rating_text,
        number_of_reviews=_count(raw, fields["number_of_reviews"]),
        seats_available=_count(raw, fields["seats_available"]),
        total_seats=_count(raw, fields["total_seats"]),
        single_seats=_count(raw, fields["single_seats"]),
        window_seats=_count(raw, fields["window_seats"]),
        route=route,
        via_route=_first_text(raw, fields["via_route"]),
        boarding_point=_first_text(raw, fields["boarding_point"]) or (boarding_points[0] if boarding_points else ""),
        dropping_point=_first_text(raw, fields["dropping_point"]) or (dropping_points[0] if dropping_points else ""),
        boarding_points=boarding_points,
        dropping_points=dropping_points,
        amenities=extract_amenities(_first(raw, fields["amenities"])),
        tags=tuple(tags),
        is_primo=_flag(raw, fields["is_primo"]),
        is_live_tracking=live_tracking,
        has_free_date_change=free_date_change,
        offer_tag=_first_text(raw, fields["offer_tag"]),
        special_message=_first_text(raw, fields["special_message"]),
        cancellation_policy=cancellation_policy,
        is_sponsored=_flag(raw, fields["is_sponsored"]) or _first_text(raw, fields["campaign_type"]) == "sponsored",
    )
