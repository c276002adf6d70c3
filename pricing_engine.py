"""
Travel Back-Office Pricing Engine
=================================
Core money logic with:
  - Profit and margin calculation for trips
  - Vendor payout status resolution (Pending -> Overdue)
  - Hotel rate selection and accommodation cost
  - Pricing/tax rule engine (markup + tax per linked module, seasonal windows)
  - Itinerary quotes built from the events of an itinerary

All amounts are Decimal, rounded to 2 places with ROUND_HALF_UP.
Routes call this module; they never compute prices themselves.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Any, Optional
import logging

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

LINKED_MODULES = ('Hotel', 'Vehicle', 'Activity', 'Package')
RATE_TYPES = ('Flat', 'Per Person', 'Per Vehicle', 'Seasonal')
MARKUP_TYPES = ('Percentage', 'Fixed')
TAX_TYPES = ('GST', 'Service Tax', 'None')
PAYOUT_STATUSES = ('Pending', 'Paid', 'Overdue')

# Event type -> pricing module whose rules apply to that line
EVENT_MODULES = {
    'Accommodation': 'Hotel',
    'Transportation': 'Vehicle',
    'Activity': 'Activity',
}


# =====================================================
# EXCEPTIONS
# =====================================================

class PricingEngineError(Exception):
    """Base exception for pricing engine errors"""
    pass

class RateMissingError(PricingEngineError):
    pass

class InvalidConfigurationError(PricingEngineError):
    pass


# =====================================================
# HELPERS
# =====================================================

def to_decimal(value, field: str = 'amount') -> Decimal:
    """Blank values count as zero; anything else must parse as a number."""
    if value is None or value == '':
        return Decimal('0')
    try:
        amount = Decimal(str(value).replace(',', '').strip())
    except (InvalidOperation, ValueError):
        raise InvalidConfigurationError(f"Invalid {field}: {value!r}")
    if not amount.is_finite():
        raise InvalidConfigurationError(f"Invalid {field}: {value!r}")
    return amount


def money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, ROUND_HALF_UP)


def as_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidConfigurationError(f"Invalid date: {value!r}")


# =====================================================
# PROFIT / PAYOUTS
# =====================================================

def calculate_profit(revenue, expenses, payouts) -> Dict[str, Decimal]:
    """
    Gross profit and margin for one trip.

    Args:
        revenue: Total revenue billed to the customer
        expenses: Sum of tracked expenses
        payouts: Sum of vendor payouts

    Returns:
        Dict with total_revenue, total_expenses, total_vendor_payouts,
        gross_profit and profit_margin (percent, 0 when revenue <= 0)
    """
    revenue = to_decimal(revenue, 'revenue')
    expenses = to_decimal(expenses, 'expenses')
    payouts = to_decimal(payouts, 'payouts')

    gross = revenue - expenses - payouts
    margin = (gross / revenue * 100) if revenue > 0 else Decimal('0')

    return {
        'total_revenue': money(revenue),
        'total_expenses': money(expenses),
        'total_vendor_payouts': money(payouts),
        'gross_profit': money(gross),
        'profit_margin': money(margin),
    }


def resolve_payout_status(status: Optional[str], due_date, today: Optional[date] = None) -> str:
    """A Pending payout whose due date has passed is stored as Overdue."""
    status = status or 'Pending'
    due = as_date(due_date)
    today = today or date.today()
    if status == 'Pending' and due is not None and due < today:
        return 'Overdue'
    return status


# =====================================================
# HOTEL RATES
# =====================================================

class RateCalculator:
    """
    Date-ranged hotel rate lookup and accommodation cost.
    Rate rows carry one price column per occupancy (single .. cnb).
    """

    ROOM_COLUMNS = ('single', 'double', 'triple', 'quad', 'cwb', 'cnb')

    @staticmethod
    def nights_between(checkin, checkout) -> int:
        """Nights of a stay, never less than 1."""
        start = as_date(checkin)
        end = as_date(checkout)
        if not start or not end:
            return 1
        return max(1, (end - start).days)

    @staticmethod
    def select_rate(
        rates: List[Dict],
        room_type: Optional[str],
        meal_plan: Optional[str],
        on_date
    ) -> Dict:
        """
        Pick the rate row covering on_date.

        Room type must match (case-insensitive) when given. A row with the
        requested meal plan wins over one with a different plan.

        Raises:
            RateMissingError: no row covers the date
        """
        stay_date = as_date(on_date)
        candidates = []
        for rate in rates:
            start = as_date(rate.get('from_date'))
            end = as_date(rate.get('to_date'))
            if stay_date is not None and start and end and not (start <= stay_date <= end):
                continue
            if room_type and (rate.get('room_type') or '').strip().lower() != room_type.strip().lower():
                continue
            candidates.append(rate)

        if not candidates:
            raise RateMissingError(
                f"No rate for room type {room_type or 'any'} on {stay_date or 'any date'}"
            )

        if meal_plan:
            for rate in candidates:
                if (rate.get('meal_plan') or '').upper() == meal_plan.upper():
                    return rate
        return candidates[0]

    @staticmethod
    def occupied_column(room_counts: Optional[Dict]) -> Optional[str]:
        """The single occupancy column with a non-zero count, or None."""
        used = []
        for column in RateCalculator.ROOM_COLUMNS:
            count = to_decimal((room_counts or {}).get(column), column)
            if count > 0:
                used.append(column)
        if len(used) > 1:
            raise InvalidConfigurationError(
                f"Only one room type can be selected, got {', '.join(used)}"
            )
        return used[0] if used else None

    @staticmethod
    def accommodation_cost(rate: Dict, room_counts: Optional[Dict], nights: int) -> Dict[str, Any]:
        """
        Cost of a stay: room count x rate column x nights.

        Returns:
            Dict with column, rooms, unit_rate, nights and cost
        """
        column = RateCalculator.occupied_column(room_counts)
        if column is None:
            return {'column': None, 'rooms': 0, 'unit_rate': Decimal('0'),
                    'nights': nights, 'cost': Decimal('0')}

        rooms = to_decimal(room_counts.get(column), column)
        unit_rate = to_decimal(rate.get(column), column)
        cost = money(rooms * unit_rate * nights)
        return {
            'column': column,
            'rooms': int(rooms),
            'unit_rate': money(unit_rate),
            'nights': nights,
            'cost': cost,
        }


# =====================================================
# PRICING / TAX RULE ENGINE
# =====================================================

class PricingRuleEngine:
    """
    Applies the active pricing_tax_rules of a linked module to a base cost.
    Markup first, tax on base + markup. Several matching rules stack.
    Seasonal rules only apply inside their season window.
    """

    def __init__(self, db_connection):
        self.db = db_connection
        self._cache: Dict[str, List[Dict]] = {}

    def fetch_active_rules(self, linked_module: str) -> List[Dict]:
        if linked_module in self._cache:
            return self._cache[linked_module]

        cursor = self.db.cursor()
        cursor.execute(
            """SELECT id, name, rate_type, linked_module, markup_type, markup_value,
                      tax_type, tax_percentage, season_start_date, season_end_date
               FROM pricing_tax_rules
               WHERE status = 'Active' AND linked_module = %s
               ORDER BY id ASC""",
            (linked_module,)
        )
        columns = [desc[0] for desc in cursor.description]
        rules = [dict(zip(columns, row)) for row in cursor.fetchall()]
        self._cache[linked_module] = rules
        return rules

    @staticmethod
    def rule_applies(rule: Dict, on_date=None) -> bool:
        if rule.get('rate_type') != 'Seasonal':
            return True
        start = as_date(rule.get('season_start_date'))
        end = as_date(rule.get('season_end_date'))
        day = as_date(on_date)
        if not start or not end or not day:
            return False
        return start <= day <= end

    @staticmethod
    def markup_for(rule: Dict, base: Decimal, pax: int = 1, units: int = 1) -> Decimal:
        value = to_decimal(rule.get('markup_value'), 'markup_value')
        markup_type = rule.get('markup_type')

        if markup_type == 'Percentage':
            return money(base * value / 100)
        if markup_type == 'Fixed':
            rate_type = rule.get('rate_type')
            if rate_type == 'Per Person':
                return money(value * pax)
            if rate_type == 'Per Vehicle':
                return money(value * units)
            return money(value)

        raise InvalidConfigurationError(f"Unknown markup type: {markup_type!r}")

    @staticmethod
    def tax_for(rule: Dict, taxable: Decimal) -> Decimal:
        if not rule.get('tax_type') or rule.get('tax_type') == 'None':
            return Decimal('0')
        pct = to_decimal(rule.get('tax_percentage'), 'tax_percentage')
        return money(taxable * pct / 100)

    def apply(
        self,
        linked_module: str,
        base: Decimal,
        on_date=None,
        pax: int = 1,
        units: int = 1
    ) -> Dict[str, Any]:
        """
        Apply every matching rule of the module to base.

        Returns:
            Dict with base, markup, tax, total and applied_rules
        """
        markup_total = Decimal('0')
        tax_total = Decimal('0')
        applied = []

        for rule in self.fetch_active_rules(linked_module):
            if not self.rule_applies(rule, on_date):
                continue
            markup = self.markup_for(rule, base, pax, units)
            tax = self.tax_for(rule, base + markup)
            markup_total += markup
            tax_total += tax
            applied.append({
                'rule_id': rule['id'],
                'name': rule['name'],
                'markup': markup,
                'tax': tax,
            })
            logger.info(f"Rule applied: [{rule['id']}] {rule['name']} on {linked_module}")

        return {
            'base': money(base),
            'markup': money(markup_total),
            'tax': money(tax_total),
            'total': money(base + markup_total + tax_total),
            'applied_rules': applied,
        }


# =====================================================
# ITINERARY QUOTE
# =====================================================

class ItineraryQuoteEngine:
    """
    Prices an itinerary from its events.

    Accommodation is priced from hotel_rates; Transportation, Activity,
    Meal and Flight use the price carried in event_data. Line items get the
    rules of their module, then Package rules apply to the subtotal.
    Missing hotels or rates become warnings instead of failing the quote.
    """

    def __init__(self, db_connection):
        self.db = db_connection
        self.rule_engine = PricingRuleEngine(db_connection)

    def quote(self, itinerary: Dict[str, Any], days: List[Dict[str, Any]]) -> Dict[str, Any]:
        adults = int(itinerary.get('adults') or 0)
        children = int(itinerary.get('children') or 0)
        pax = adults + children
        if pax <= 0:
            raise InvalidConfigurationError("At least 1 traveler required")

        lines = []
        warnings = []

        for day in days:
            for event in day.get('events', []):
                line = self._price_event(day, event, pax, warnings)
                if line is not None:
                    lines.append(line)

        subtotal = sum((line['total'] for line in lines), Decimal('0'))
        package = self.rule_engine.apply(
            'Package', subtotal, on_date=itinerary.get('start_date'), pax=pax
        )

        base_total = sum((line['baseCost'] for line in lines), Decimal('0'))
        markup_total = sum((line['markup'] for line in lines), Decimal('0')) + package['markup']
        tax_total = sum((line['tax'] for line in lines), Decimal('0')) + package['tax']
        total = package['total']

        return {
            'itineraryId': itinerary.get('id'),
            'adults': adults,
            'children': children,
            'pax': pax,
            'lines': lines,
            'baseTotal': money(base_total),
            'markupTotal': money(markup_total),
            'taxTotal': money(tax_total),
            'packageRules': package['applied_rules'],
            'total': total,
            'perPerson': money(total / pax),
            'warnings': warnings,
        }

    # -------------------------------------------------
    # EVENTS
    # -------------------------------------------------

    def _price_event(self, day, event, pax, warnings) -> Optional[Dict[str, Any]]:
        title = event.get('title')
        data = event.get('event_data') or {}
        on_date = data.get('date') or day.get('date')

        if title == 'Accommodation':
            checkin = (data.get('checkin') or {}).get('date') or day.get('date')
            checkout = (data.get('checkout') or {}).get('date')
            on_date = checkin
            try:
                base = self._accommodation_cost(data, checkin, checkout)
            except PricingEngineError as e:
                logger.warning(f"Accommodation not priced on day {day.get('day_number')}: {e}")
                warnings.append(f"Day {day.get('day_number')}: {e}")
                base = Decimal('0')
            label = data.get('hotelName') or 'Accommodation'
        elif title in ('Transportation', 'Activity', 'Meal', 'Flight'):
            base = to_decimal(data.get('price'), 'price')
            label = data.get('name') or title
        else:
            return None

        module = EVENT_MODULES.get(title)
        if module:
            priced = self.rule_engine.apply(module, base, on_date=on_date, pax=pax, units=1)
        else:
            priced = {'base': money(base), 'markup': Decimal('0'), 'tax': Decimal('0'),
                      'total': money(base), 'applied_rules': []}

        return {
            'dayNumber': day.get('day_number'),
            'eventId': event.get('id'),
            'type': title,
            'label': label,
            'module': module,
            'baseCost': priced['base'],
            'markup': priced['markup'],
            'tax': priced['tax'],
            'total': priced['total'],
            'appliedRules': priced['applied_rules'],
        }

    def _accommodation_cost(self, data, checkin, checkout) -> Decimal:
        hotel = self._resolve_hotel(data.get('hotelName'), data.get('destination'))
        if not hotel:
            raise RateMissingError(f"Hotel {data.get('hotelName') or '(unnamed)'} not found")

        rates = self._fetch_rates(hotel['id'])
        rate = RateCalculator.select_rate(rates, data.get('roomName'), data.get('mealPlan'), checkin)
        nights = RateCalculator.nights_between(checkin, checkout)
        return RateCalculator.accommodation_cost(rate, data.get('roomCounts'), nights)['cost']

    def _resolve_hotel(self, name: Optional[str], destination: Optional[str]) -> Optional[Dict]:
        if not name:
            return None
        cursor = self.db.cursor()
        query = "SELECT id, name, destination FROM hotels WHERE LOWER(name) = LOWER(%s)"
        params = [name.strip()]
        if destination:
            query += " AND LOWER(destination) = LOWER(%s)"
            params.append(destination.strip())
        query += " ORDER BY id LIMIT 1"
        cursor.execute(query, params)
        row = cursor.fetchone()
        if not row:
            return None
        return {'id': row[0], 'name': row[1], 'destination': row[2]}

    def _fetch_rates(self, hotel_id: int) -> List[Dict]:
        cursor = self.db.cursor()
        cursor.execute(
            """SELECT * FROM hotel_rates
               WHERE hotel_id = %s AND status = 'Active'
               ORDER BY from_date DESC, room_type""",
            (hotel_id,)
        )
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]
