"""
Itinerary Builder Engine
========================
Rules of the itinerary builder that hold regardless of which screen calls them:
  - Fixed event vocabulary, one Details event per day
  - Per-type event_data shape with builder defaults
  - Exclusive accommodation room counts
  - Day planning from a date range
  - Destinations, package terms and cover photo validation
  - Auto-creation of hotels, transfers and destinations typed in manually
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Any, Optional
import base64
import binascii
import copy
import html
import json
import logging
import re

import config

logger = logging.getLogger(__name__)

EVENT_TYPES = ('Details', 'Accommodation', 'Activity', 'Transportation', 'Meal', 'Flight', 'Leisure')

EVENT_ICONS = {
    'Accommodation': '[HOTEL]',
    'Transportation': '[CAR]',
    'Activity': '[ACTIVITY]',
    'Meal': '[MEAL]',
    'Flight': '[FLIGHT]',
    'Leisure': '[LEISURE]',
    'Details': '[DETAILS]',
}

ROOM_COUNT_KEYS = ('single', 'double', 'triple', 'quad', 'cwb', 'cnb')

DEFAULT_TERM_TYPE = 'Add tips'

MAX_PLANNED_DAYS = 366

# Defaults of each event form; only these keys survive normalization
EVENT_TEMPLATES = {
    'Details': {
        'description': '',
    },
    'Accommodation': {
        'destination': '',
        'type': 'Manual',
        'hotelName': '',
        'category': '1 Star',
        'roomName': '',
        'mealPlan': '',
        'hotelOption': 'Option 1',
        'hotelPhoto': None,
        'roomCounts': {key: '0' for key in ROOM_COUNT_KEYS},
        'checkin': {'date': '', 'time': '2:00 PM', 'showTime': False},
        'checkout': {'date': '', 'time': '11:00 AM', 'showTime': False},
    },
    'Activity': {
        'destination': '',
        'type': 'Manual',
        'name': '',
        'date': '',
        'startTime': '1:00 PM',
        'endTime': '2:00 PM',
        'showTime': False,
        'price': '',
    },
    'Transportation': {
        'destination': '',
        'type': 'Manual',
        'transferType': 'Private',
        'name': '',
        'content': '',
        'transferPhoto': None,
        'price': '',
        'date': '',
        'startTime': '',
        'endTime': '',
        'showTime': False,
    },
    'Meal': {
        'name': '',
        'destination': '',
        'mealType': 'BB',
        'date': '',
        'startTime': '',
        'endTime': '',
        'showTime': False,
        'price': '',
    },
    'Flight': {
        'name': '',
        'flightNo': '',
        'fromDestination': '',
        'toDestination': '',
        'flightDuration': '',
        'date': '',
        'startTime': '',
        'endTime': '',
        'price': '',
    },
    'Leisure': {
        'name': 'Day at Leisure',
        'destination': '',
    },
}


# =====================================================
# EXCEPTIONS
# =====================================================

class ItineraryError(Exception):
    """Base exception for itinerary builder errors"""
    pass

class InvalidItineraryError(ItineraryError):
    pass

class InvalidEventError(ItineraryError):
    pass

class DuplicateEventError(ItineraryError):
    pass


# =====================================================
# EVENT DATA
# =====================================================

def _load_json(value, label):
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except ValueError:
            raise InvalidEventError(f"{label} is not valid JSON")
    return value


def _merge(template: Dict, data: Dict) -> Dict:
    merged = {}
    for key, default in template.items():
        value = data.get(key)
        if isinstance(default, dict):
            merged[key] = _merge(default, value if isinstance(value, dict) else {})
        elif isinstance(default, bool):
            if isinstance(value, str):
                value = value.strip().lower() in ('1', 'true', 'yes', 'on')
            merged[key] = bool(value) if value is not None else default
        elif value is None or value == '':
            merged[key] = copy.deepcopy(default)
        else:
            merged[key] = value
    return merged


def _count(value, key) -> Decimal:
    if value is None or str(value).strip() == '':
        return Decimal('0')
    try:
        count = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidEventError(f"Invalid room count for {key}: {value!r}")
    if not count.is_finite():
        raise InvalidEventError(f"Invalid room count for {key}: {value!r}")
    if count < 0:
        raise InvalidEventError(f"Room count for {key} cannot be negative")
    return count


def normalize_room_counts(room_counts: Optional[Dict]) -> Dict[str, str]:
    """Blanks become "0"; at most one occupancy may be non-zero."""
    room_counts = room_counts or {}
    normalized = {}
    used = []
    for key in ROOM_COUNT_KEYS:
        count = _count(room_counts.get(key), key)
        normalized[key] = str(room_counts.get(key)).strip() if count else '0'
        if count:
            used.append(key)
    if len(used) > 1:
        raise InvalidEventError(
            f"Only one room type can be selected, got {', '.join(used)}"
        )
    return normalized


def _check_price(data: Dict):
    price = data.get('price')
    if price in (None, ''):
        return
    try:
        amount = Decimal(str(price).replace(',', '').strip())
    except InvalidOperation:
        raise InvalidEventError(f"Invalid price: {price!r}")
    if not amount.is_finite():
        raise InvalidEventError(f"Invalid price: {price!r}")


def validate_event_title(title) -> str:
    title = (title or '').strip() if isinstance(title, str) else title
    if title not in EVENT_TYPES:
        raise InvalidEventError(
            f"Unknown event type {title!r}. Expected one of: {', '.join(EVENT_TYPES)}"
        )
    return title


def normalize_event_data(title: str, data) -> Dict[str, Any]:
    """
    Shape event_data for its event type.

    Unknown keys are dropped, blank values take the builder defaults and
    accommodation room counts are made exclusive.

    Raises:
        InvalidEventError: unknown type, malformed data or room counts
    """
    title = validate_event_title(title)
    data = _load_json(data, 'Event data') or {}
    if not isinstance(data, dict):
        raise InvalidEventError('Event data must be an object')

    normalized = _merge(EVENT_TEMPLATES[title], data)

    if title == 'Accommodation':
        raw_counts = data.get('roomCounts') if isinstance(data.get('roomCounts'), dict) else {}
        normalized['roomCounts'] = normalize_room_counts(raw_counts)
    if 'price' in normalized:
        _check_price(normalized)

    return normalized


def sort_events(events: List[Dict]) -> List[Dict]:
    """Details first, then sort_order, then id."""
    return sorted(
        events,
        key=lambda e: (e.get('title') != 'Details', e.get('sort_order') or 0, e.get('id') or 0)
    )


def next_sort_order(current_max) -> int:
    return (current_max or 0) + 1


# =====================================================
# DAYS
# =====================================================

def parse_date(value, label='date') -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidItineraryError(f"Invalid {label}: {value!r}")


def plan_days(start_date, end_date) -> List[Dict[str, Any]]:
    """One day per date from start to end inclusive, titled Day N."""
    start = parse_date(start_date, 'start date')
    end = parse_date(end_date, 'end date')
    if not start or not end:
        raise InvalidItineraryError('Start date and end date are required to generate days')
    if end < start:
        raise InvalidItineraryError('End date must be on or after start date')

    total = (end - start).days + 1
    if total > MAX_PLANNED_DAYS:
        raise InvalidItineraryError(f"Cannot generate more than {MAX_PLANNED_DAYS} days")

    return [
        {'day_number': n + 1, 'title': f"Day {n + 1}", 'date': start + timedelta(days=n)}
        for n in range(total)
    ]


def format_day_date(value) -> str:
    """'Mon, 1 Jan 2025' style label, empty for missing dates."""
    day = parse_date(value) if value else None
    if not day:
        return ''
    return f"{day.strftime('%a')}, {day.day} {day.strftime('%b')} {day.year}"


# =====================================================
# ITINERARY FIELDS
# =====================================================

def parse_destinations(value) -> List[str]:
    """Trimmed, de-duplicated destination names in input order."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(',')
    if not isinstance(value, (list, tuple)):
        raise InvalidItineraryError('Destinations must be a list or a comma-separated string')

    seen = set()
    names = []
    for item in value:
        name = str(item).strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return names


def join_destinations(value) -> str:
    return ', '.join(parse_destinations(value))


def normalize_package_terms(terms) -> List[Dict[str, str]]:
    """List of {type, title, description}; title required, type defaults to Add tips."""
    if terms is None:
        return []
    if isinstance(terms, str):
        try:
            terms = json.loads(terms) if terms.strip() else []
        except ValueError:
            raise InvalidItineraryError('Package terms are not valid JSON')
    if not isinstance(terms, list):
        raise InvalidItineraryError('Package terms must be a list')

    normalized = []
    for index, term in enumerate(terms, start=1):
        if not isinstance(term, dict):
            raise InvalidItineraryError(f"Package term {index} must be an object")
        title = (term.get('title') or '').strip()
        if not title:
            raise InvalidItineraryError(f"Package term {index} needs a title")
        normalized.append({
            'type': (term.get('type') or '').strip() or DEFAULT_TERM_TYPE,
            'title': title,
            'description': term.get('description') or '',
        })
    return normalized


_DATA_URL = re.compile(r'^data:image/[a-zA-Z0-9.+-]+;base64,(?P<payload>.*)$', re.DOTALL)


def validate_cover_photo(value) -> Optional[str]:
    """None, an http(s) URL, or a base64 image data URL within the size limit."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        raise InvalidItineraryError('Cover photo must be a URL or data URL')

    value = value.strip()
    if value.startswith(('http://', 'https://')):
        return value

    match = _DATA_URL.match(value)
    if not match:
        raise InvalidItineraryError('Cover photo must be an http(s) URL or a base64 image data URL')

    try:
        raw = base64.b64decode(match.group('payload'), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidItineraryError('Cover photo data is not valid base64')
    if len(raw) > config.MAX_COVER_PHOTO_BYTES:
        limit_mb = config.MAX_COVER_PHOTO_BYTES // (1024 * 1024)
        raise InvalidItineraryError(f"Cover photo must be {limit_mb} MB or smaller")
    return value


def _count_field(value, label) -> int:
    if value in (None, ''):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise InvalidItineraryError(f"Invalid {label}: {value!r}")
    if count < 0:
        raise InvalidItineraryError(f"{label.capitalize()} cannot be negative")
    return count


def _pick(data, key, column):
    """(present, value) for a camelCase key or its snake_case column."""
    if key in data:
        return True, data[key]
    if column in data:
        return True, data[column]
    return False, None


def itinerary_values(data: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Column values for an itinerary insert (current is None) or partial update.

    Only keys present in data are returned for updates. Dates are checked
    against the stored ones when only one side changes.
    """
    creating = current is None
    values = {}

    if 'name' in data or creating:
        name = (data.get('name') or '').strip()
        if not name:
            raise InvalidItineraryError('Itinerary name is required')
        values['name'] = name

    if 'destinations' in data or creating:
        values['destinations'] = join_destinations(data.get('destinations'))

    for key, column in (('startDate', 'start_date'), ('endDate', 'end_date')):
        present, raw = _pick(data, key, column)
        if present:
            values[column] = parse_date(raw, column.replace('_', ' '))

    for column, default in (('adults', 1), ('children', 0)):
        if column in data:
            values[column] = _count_field(data[column], column)
        elif creating:
            values[column] = default

    present, raw = _pick(data, 'coverPhoto', 'cover_photo')
    if present:
        values['cover_photo'] = validate_cover_photo(raw)

    present, raw = _pick(data, 'packageTerms', 'package_terms')
    if present:
        values['package_terms'] = normalize_package_terms(raw)
    elif creating:
        values['package_terms'] = []

    for column in ('notes', 'status'):
        if column in data:
            values[column] = (data.get(column) or '').strip()

    start = values.get('start_date', (current or {}).get('start_date'))
    end = values.get('end_date', (current or {}).get('end_date'))
    start, end = parse_date(start), parse_date(end)
    if start and end and end < start:
        raise InvalidItineraryError('End date must be on or after start date')

    return values


# =====================================================
# TEXT
# =====================================================

def strip_html(text) -> str:
    if not text:
        return ''
    text = re.sub(r'<br\s*/?>|</p>', '\n', str(text), flags=re.IGNORECASE)
    text = re.sub(r'<[^>]*>', '', text)
    return html.unescape(text).strip()


def hotel_category_from_label(label, default=3) -> int:
    """Star rating from labels like '3 Star'."""
    if isinstance(label, int):
        return label
    match = re.search(r'\d+', str(label or ''))
    return int(match.group()) if match else default


def export_filename(name, today: Optional[date] = None) -> str:
    base = re.sub(r'[^a-zA-Z0-9]', '_', name or '') or 'itinerary'
    return f"{base}_{(today or date.today()).isoformat()}.pdf"


# =====================================================
# MASTER AUTO-CREATION
# =====================================================

def ensure_destinations(cur, names) -> int:
    """Insert destination names missing from the master. Returns rows inserted."""
    created = 0
    for name in parse_destinations(names):
        cur.execute(
            """INSERT INTO destinations (name, status, created_by)
               VALUES (%s, 'Active', %s)
               ON CONFLICT (name) DO NOTHING
               RETURNING id""",
            (name, config.CREATED_BY_DEFAULT)
        )
        if cur.fetchone():
            created += 1
            logger.info(f"Created destination: {name}")
    return created


def ensure_hotel_for_event(cur, event_data: Dict[str, Any]) -> Optional[int]:
    """Hotel id for a manual accommodation, creating the hotel when it is new."""
    if event_data.get('type') != 'Manual':
        return None
    name = (event_data.get('hotelName') or '').strip()
    destination = (event_data.get('destination') or '').strip()
    if not name or not destination:
        return None

    cur.execute(
        "SELECT id FROM hotels WHERE LOWER(name) = LOWER(%s) AND LOWER(destination) = LOWER(%s)",
        (name, destination)
    )
    row = cur.fetchone()
    if row:
        return row[0]

    cur.execute(
        """INSERT INTO hotels (name, destination, category, hotel_type, icon_url, status, created_by)
           VALUES (%s, %s, %s, 'Hotel', %s, 'Active', %s) RETURNING id""",
        (name, destination, hotel_category_from_label(event_data.get('category')),
         event_data.get('hotelPhoto'), config.CREATED_BY_DEFAULT)
    )
    hotel_id = cur.fetchone()[0]
    logger.info(f"Created hotel ID {hotel_id} from itinerary event: {name} ({destination})")
    return hotel_id


def ensure_transfer_for_event(cur, event_data: Dict[str, Any]) -> Optional[int]:
    """Transfer id for a manual transportation, creating the transfer when it is new."""
    if event_data.get('type') != 'Manual':
        return None
    name = (event_data.get('name') or '').strip()
    destination = (event_data.get('destination') or '').strip()
    if not name or not destination:
        return None

    cur.execute(
        "SELECT id FROM transfers WHERE LOWER(query_name) = LOWER(%s) AND LOWER(destination) = LOWER(%s)",
        (name, destination)
    )
    row = cur.fetchone()
    if row:
        return row[0]

    price = event_data.get('price')
    price = Decimal(str(price).replace(',', '').strip()) if price not in (None, '') else Decimal('0')
    cur.execute(
        """INSERT INTO transfers (query_name, destination, price, content, photo_url, status, created_by)
           VALUES (%s, %s, %s, %s, %s, 'Active', %s) RETURNING id""",
        (name, destination, price, event_data.get('content') or '',
         event_data.get('transferPhoto') or '', config.CREATED_BY_DEFAULT)
    )
    transfer_id = cur.fetchone()[0]
    logger.info(f"Created transfer ID {transfer_id} from itinerary event: {name} ({destination})")
    return transfer_id


def sync_event_masters(cur, title: str, event_data: Dict[str, Any]) -> None:
    """Register manually typed hotels, transfers and destinations of an event."""
    destination = event_data.get('destination')
    if destination:
        ensure_destinations(cur, destination)
    if title == 'Accommodation':
        ensure_hotel_for_event(cur, event_data)
    elif title == 'Transportation':
        ensure_transfer_for_event(cur, event_data)
