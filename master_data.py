"""
Master data registry.

Every admin-managed table (hotels, suppliers, lead sources, finance ledgers,
...) is described once as a MasterResource: its columns with their kinds
and defaults, its required fields, list filters and ordering. The generic
CRUD routes in app.py drive all of them through the helpers below.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
import logging

import config
from db import row_to_dict, rows_to_dicts
from pricing_engine import (
    LINKED_MODULES,
    MARKUP_TYPES,
    PAYOUT_STATUSES,
    RATE_TYPES,
    TAX_TYPES,
    calculate_profit,
    resolve_payout_status,
)

logger = logging.getLogger(__name__)

NOTE_CATEGORIES = ('Inclusion', 'Exclusion', 'Note', 'Tip')
ACTIVE = 'Active'
INACTIVE = 'Inactive'


# =====================================================
# EXCEPTIONS
# =====================================================

class MasterDataError(Exception):
    """Base exception for master data errors"""
    pass

class MasterValidationError(MasterDataError):
    pass

class MasterNotFoundError(MasterDataError):
    pass


# =====================================================
# FIELD COERCION
# =====================================================

def snake_to_camel(name):
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _is_blank(value):
    return value is None or value == '' or value == []


def as_flag(value):
    """Booleans from JSON or form-style strings like "false" and "on"."""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


class Field:
    """One column of a master table and how request values map onto it."""

    KINDS = ('text', 'int', 'decimal', 'bool', 'list', 'date')

    def __init__(self, column, kind='text', default=None, aliases=(), updatable=True):
        if kind not in self.KINDS:
            raise ValueError(f"Unknown field kind {kind}")
        self.column = column
        self.kind = kind
        self.default = default
        self.keys = (column, snake_to_camel(column)) + tuple(aliases)
        self.updatable = updatable

    def lookup(self, data):
        """(present, raw value) for the first matching key in data."""
        for key in self.keys:
            if key in data:
                return True, data[key]
        return False, None

    def coerce(self, value):
        if value is None:
            return None
        label = self.column.replace('_', ' ')

        if self.kind == 'text':
            return value.strip() if isinstance(value, str) else str(value)

        if self.kind == 'int':
            if value == '':
                return None
            try:
                return int(float(value))
            except (TypeError, ValueError):
                raise MasterValidationError(f"Invalid {label}: {value!r}")

        if self.kind == 'decimal':
            if value == '':
                return None
            try:
                amount = Decimal(str(value).strip())
            except InvalidOperation:
                raise MasterValidationError(f"Invalid {label}: {value!r}")
            if not amount.is_finite():
                raise MasterValidationError(f"Invalid {label}: {value!r}")
            return amount

        if self.kind == 'bool':
            return as_flag(value)

        if self.kind == 'list':
            if isinstance(value, str):
                value = value.split(',')
            if not isinstance(value, (list, tuple)):
                raise MasterValidationError(f"Invalid {label}: expected a list")
            return [str(v).strip() for v in value if str(v).strip()]

        # date
        if value == '':
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            raise MasterValidationError(f"Invalid {label}: {value!r}")

    def resolve(self, value):
        """Coerced value with `value or default` substitution."""
        value = self.coerce(value)
        blank = _is_blank(value) or (self.kind == 'int' and value == 0)
        if blank and self.default is not None:
            return self.default() if callable(self.default) else self.default
        return value


def _created_by():
    return config.CREATED_BY_DEFAULT


def _status():
    return Field('status', default=ACTIVE)


# =====================================================
# RESOURCE DEFINITION
# =====================================================

class ListFilter:
    """Query-string filter: first present param feeds the SQL clause."""

    def __init__(self, params, clause, like=False, integer=False):
        self.params = params
        self.clause = clause
        self.like = like
        self.integer = integer

    def value(self, args):
        for param in self.params:
            value = args.get(param)
            if value in (None, ''):
                continue
            if self.integer:
                try:
                    return int(value)
                except ValueError:
                    raise MasterValidationError(f"{param} must be an integer")
            return f"%{value}%" if self.like else value
        return None


class MasterResource:

    def __init__(self, name, table, collection_key, item_key, label, fields,
                 required=(), required_message=None, order_by='created_at DESC, id DESC',
                 unique_label=None, filters=None, select_from=None, required_filter=None,
                 status_column='status', toggleable=True, active_only=False,
                 soft_delete=False, validators=(), before_insert=None, before_update=None):
        self.name = name
        self.table = table
        self.collection_key = collection_key
        self.item_key = item_key
        self.label = label
        self.fields = fields
        self.field_map = {f.column: f for f in fields}
        self.required = required
        self.required_message = required_message or f"{label} {' and '.join(required)} required"
        self.order_by = order_by
        self.unique_label = unique_label or label
        self.filters = filters if filters is not None else [ListFilter(('status',), 'status = %s')]
        self.select_from = select_from or f"SELECT * FROM {table}"
        self.required_filter = required_filter
        self.status_column = status_column
        self.toggleable = toggleable
        self.active_only = active_only
        self.soft_delete = soft_delete
        self.validators = validators
        self.before_insert = before_insert
        self.before_update = before_update

    def check_required(self, data):
        for column in self.required:
            present, value = self.field_map[column].lookup(data)
            if not present or _is_blank(value if not isinstance(value, str) else value.strip()):
                raise MasterValidationError(self.required_message)

    def values_for_insert(self, data):
        """Column -> value for every field, blanks without a default left to the database."""
        self.check_required(data)
        values = {}
        for field in self.fields:
            _, raw = field.lookup(data)
            value = field.resolve(raw)
            if value is not None:
                values[field.column] = value
        self.validate(values)
        return values

    def values_for_update(self, data):
        """Column -> value for the updatable fields present in data."""
        values = {}
        for field in self.fields:
            if not field.updatable:
                continue
            present, raw = field.lookup(data)
            if present:
                values[field.column] = field.resolve(raw)
        for column in self.required:
            if column in values and _is_blank(values[column]):
                raise MasterValidationError(self.required_message)
        self.validate(values)
        return values

    def validate(self, values):
        for validator in self.validators:
            validator(values)


# =====================================================
# VALIDATORS / HOOKS
# =====================================================

def _one_of(column, allowed, label):
    def check(values):
        value = values.get(column)
        if value not in (None, '') and value not in allowed:
            raise MasterValidationError(f"{label} must be one of: {', '.join(allowed)}")
    return check


def _date_order(start_column, end_column, message):
    def check(values):
        start = values.get(start_column)
        end = values.get(end_column)
        if start and end and end < start:
            raise MasterValidationError(message)
    return check


def _hotel_must_exist(cur, values, data):
    cur.execute("SELECT id FROM hotels WHERE id = %s", (values['hotel_id'],))
    if not cur.fetchone():
        raise MasterNotFoundError('Hotel not found')


def _moved_hotel_must_exist(cur, values, data, item_id):
    if 'hotel_id' in values:
        _hotel_must_exist(cur, values, data)


def _payout_status_on_insert(cur, values, data):
    values['payment_status'] = resolve_payout_status(
        values.get('payment_status'), values.get('payment_due_date')
    )


def trip_totals(cur, trip_id):
    """Sum of expenses and vendor payouts booked against a trip."""
    cur.execute(
        "SELECT COALESCE(SUM(expense_amount), 0) FROM expense_tracking_master WHERE trip_id = %s",
        (trip_id,)
    )
    expenses = cur.fetchone()[0]
    cur.execute(
        "SELECT COALESCE(SUM(payable_amount), 0) FROM vendor_payout_master WHERE trip_id = %s",
        (trip_id,)
    )
    payouts = cur.fetchone()[0]
    return expenses, payouts


def _wants_auto_calculate(data):
    return as_flag(data.get('auto_calculate', data.get('autoCalculate')))


def _profit_on_insert(cur, values, data):
    expenses = values.get('total_expenses') or 0
    payouts = values.get('total_vendor_payouts') or 0
    if _wants_auto_calculate(data):
        expenses, payouts = trip_totals(cur, values['trip_id'])
    values.update(calculate_profit(values.get('total_revenue'), expenses, payouts))


def _profit_on_update(cur, values, data, item_id):
    if not _wants_auto_calculate(data):
        return
    cur.execute(
        "SELECT trip_id, total_revenue FROM profit_calculation_master WHERE id = %s",
        (item_id,)
    )
    current = cur.fetchone()
    if not current:
        raise MasterNotFoundError('Profit calculation not found')
    trip_id = values.get('trip_id') or current[0]
    revenue = values['total_revenue'] if 'total_revenue' in values else current[1]
    expenses, payouts = trip_totals(cur, trip_id)
    values.update(calculate_profit(revenue, expenses, payouts))


# =====================================================
# RESOURCES
# =====================================================

HOTELS = MasterResource(
    'hotels', 'hotels', 'hotels', 'hotel', 'Hotel',
    [
        Field('name', aliases=('hotelName',)),
        Field('destination'),
        Field('category', 'int', default=3),
        Field('hotel_type', default='Hotel'),
        Field('supplier_id', 'int'),
        Field('price', 'decimal', default=Decimal('0')),
        Field('address'),
        Field('location', default=''),
        Field('phone'),
        Field('contact_person', default=''),
        Field('email'),
        Field('website', default=''),
        Field('map_link', default=''),
        Field('amenities', 'list', default=list),
        Field('meal_plan_options', 'list', default=list),
        Field('checkin_time', default=''),
        Field('checkout_time', default=''),
        Field('gallery', 'list', default=list),
        Field('notes', default=''),
        Field('icon_url', aliases=('hotelPhoto',)),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('name', 'destination'),
    required_message='Hotel name and destination are required',
)

HOTEL_RATES = MasterResource(
    'hotel-rates', 'hotel_rates', 'rates', 'rate', 'Hotel rate',
    [
        Field('hotel_id', 'int'),
        Field('from_date', 'date'),
        Field('to_date', 'date'),
        Field('room_type'),
        Field('meal_plan', default='APAI'),
        Field('single', 'decimal', default=Decimal('0')),
        Field('double', 'decimal', default=Decimal('0')),
        Field('triple', 'decimal', default=Decimal('0')),
        Field('quad', 'decimal', default=Decimal('0')),
        Field('cwb', 'decimal', default=Decimal('0')),
        Field('cnb', 'decimal', default=Decimal('0')),
        Field('season_name', default=''),
        Field('cost_price', 'decimal', default=Decimal('0')),
        Field('selling_price', 'decimal', default=Decimal('0')),
        Field('currency', default='INR'),
        Field('extra_adult', 'decimal', default=Decimal('0')),
        Field('extra_child', 'decimal', default=Decimal('0')),
        Field('weekend_rate_diff', 'decimal', default=Decimal('0')),
        Field('weekday_rate_diff', 'decimal', default=Decimal('0')),
        Field('notes', default=''),
        _status(),
    ],
    required=('hotel_id', 'from_date', 'to_date', 'room_type'),
    required_message='Hotel ID, from date, to date and room type are required',
    order_by='from_date DESC, room_type',
    filters=[
        ListFilter(('hotelId', 'hotel_id'), 'hotel_id = %s', integer=True),
        ListFilter(('status',), 'status = %s'),
    ],
    required_filter=('hotelId', 'hotel_id'),
    validators=(_date_order('from_date', 'to_date', 'To date must be on or after from date'),),
    before_insert=_hotel_must_exist,
    before_update=_moved_hotel_must_exist,
)

SUPPLIERS = MasterResource(
    'suppliers', 'suppliers', 'suppliers', 'supplier', 'Supplier',
    [
        Field('city', default=''),
        Field('company_name', aliases=('supplierName', 'name')),
        Field('contact_person_name', aliases=('contactPerson',)),
        Field('phone_number', aliases=('phone',)),
        Field('whatsapp_number', default=''),
        Field('email', default=''),
        Field('address', default=''),
        Field('country', default=''),
        Field('gst_number', default=''),
        Field('pan_number', default=''),
        Field('bank_name', default=''),
        Field('bank_account_number', default=''),
        Field('bank_ifsc_swift', default=''),
        Field('payment_terms', default=''),
        Field('contract_start_date', 'date'),
        Field('contract_end_date', 'date'),
        Field('notes', default=''),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('company_name', 'contact_person_name', 'phone_number'),
    required_message='Supplier name, contact person name, and phone number are required',
    validators=(_date_order('contract_start_date', 'contract_end_date',
                            'Contract end date must be on or after start date'),),
)

LEAD_SOURCES = MasterResource(
    'lead-source-detailed', 'lead_source_detailed', 'leadSources', 'leadSource', 'Lead source',
    [
        Field('source_name'),
        Field('source_type'),
        Field('platform_channel'),
        Field('default_campaign_tag', default=''),
        Field('default_lead_type', default=''),
        Field('default_sales_team', default=''),
        Field('default_owner', default=''),
        Field('round_robin_active', 'bool', default=False),
        Field('auto_whatsapp_template_id', default=''),
        Field('auto_email_template_id', default=''),
        Field('utm_source', default=''),
        Field('utm_medium', default=''),
        Field('utm_campaign', default=''),
        Field('avg_response_time_mins', 'decimal', default=Decimal('0')),
        Field('success_rate_percent', 'decimal', default=Decimal('0')),
        Field('avg_cpa', 'decimal', default=Decimal('0')),
        _status(),
        Field('notes', default=''),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('source_name', 'source_type', 'platform_channel'),
    required_message='Source name, source type and platform/channel are required',
    unique_label='Source name',
)

LEAD_TYPES = MasterResource(
    'lead-types', 'lead_type_master', 'leadTypes', 'leadType', 'Lead type',
    [
        Field('lead_type_name', aliases=('name',)),
        Field('code', default=''),
        Field('description', default=''),
        Field('default_destination_handling', default='Flexible'),
        Field('default_sales_team', default=''),
        Field('default_owner', default=''),
        Field('default_workflow_name', default=''),
        Field('default_whatsapp_template_id', default=''),
        Field('default_email_template_id', default=''),
        Field('followup_rule_days', 'int', default=3),
        _status(),
        Field('notes', default=''),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('lead_type_name',),
    required_message='Lead type name is required',
    order_by="""CASE lead_type_name
                    WHEN 'Group Trip' THEN 1
                    WHEN 'FIT (Custom Trip)' THEN 2
                    WHEN 'Corporate' THEN 3
                    ELSE 4
                END, lead_type_name""",
    unique_label='Lead type name',
    filters=[],
    active_only=True,
    soft_delete=True,
)

MEAL_PLANS = MasterResource(
    'meal-plans', 'meal_plans', 'mealPlans', 'mealPlan', 'Meal plan',
    [
        Field('code'),
        Field('description', default=''),
        Field('notes', default=''),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
        Field('name'),
        Field('destination'),
        Field('meal_type'),
        Field('price', 'decimal'),
    ],
    required=('code',),
    required_message='Meal plan code is required',
)

NOTES_INCLUSIONS = MasterResource(
    'itinerary-notes-inclusions', 'itinerary_notes_inclusions', 'notesInclusions',
    'noteInclusion', 'Note',
    [
        Field('title'),
        Field('description'),
        Field('category'),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('title', 'description', 'category'),
    required_message='Title, description and category are required',
    validators=(_one_of('category', NOTE_CATEGORIES, 'Category'),),
)

PRICING_RULES = MasterResource(
    'pricing-tax-rules', 'pricing_tax_rules', 'pricingRules', 'pricingRule', 'Pricing rule',
    [
        Field('name'),
        Field('rate_type'),
        Field('linked_module'),
        Field('markup_type'),
        Field('markup_value', 'decimal', default=Decimal('0')),
        Field('tax_type'),
        Field('tax_percentage', 'decimal', default=Decimal('0')),
        Field('calculation_formula', default=''),
        Field('season_start_date', 'date'),
        Field('season_end_date', 'date'),
        Field('notes', default=''),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('name', 'rate_type', 'linked_module', 'markup_type', 'tax_type'),
    required_message='Name, rate type, linked module, markup type and tax type are required',
    unique_label='Rule name',
    validators=(
        _one_of('rate_type', RATE_TYPES, 'Rate type'),
        _one_of('linked_module', LINKED_MODULES, 'Linked module'),
        _one_of('markup_type', MARKUP_TYPES, 'Markup type'),
        _one_of('tax_type', TAX_TYPES, 'Tax type'),
        _date_order('season_start_date', 'season_end_date',
                    'Season end date must be on or after start date'),
    ),
)

DESTINATIONS = MasterResource(
    'destinations', 'destinations', 'destinations', 'destination', 'Destination',
    [
        Field('name'),
        _status(),
        Field('state', default=''),
        Field('country', default=''),
        Field('description', default=''),
        Field('best_season', default=''),
        Field('default_currency', default=''),
        Field('timezone', default=''),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('name',),
    required_message='Destination name is required',
    order_by='name',
)

ROOM_TYPES = MasterResource(
    'room-types', 'room_types', 'roomTypes', 'roomType', 'Room type',
    [
        Field('name'),
        Field('max_occupancy', 'int', default=2),
        Field('bed_type', default=''),
        Field('description', default=''),
        Field('notes', default=''),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('name',),
    required_message='Room type name is required',
)

TRANSFERS = MasterResource(
    'transfers', 'transfers', 'transfers', 'transfer', 'Transfer',
    [
        Field('query_name', aliases=('name',)),
        Field('destination'),
        Field('price', 'decimal', default=Decimal('0')),
        Field('content', default=''),
        Field('photo_url', default='', aliases=('transferPhoto',)),
        _status(),
        Field('created_by', default=_created_by, updatable=False),
        Field('supplier_id', 'int'),
        Field('vehicle_type', default=''),
        Field('distance_duration', default=''),
        Field('rate_type', default='fixed'),
        Field('base_rate', 'decimal', default=Decimal('0')),
        Field('extra_km_rate', 'decimal', default=Decimal('0')),
        Field('waiting_charge', 'decimal', default=Decimal('0')),
        Field('notes', default=''),
    ],
    required=('query_name', 'destination'),
    required_message='Query name and destination are required',
)


# =====================================================
# FINANCE RESOURCES
# =====================================================

VENDOR_PAYOUTS = MasterResource(
    'vendor-payouts', 'vendor_payout_master', 'payouts', 'payout', 'Vendor payout',
    [
        Field('vendor_name'),
        Field('supplier_id', 'int'),
        Field('booking_reference'),
        Field('trip_id'),
        Field('service_type'),
        Field('payable_amount', 'decimal'),
        Field('payment_due_date', 'date'),
        Field('payment_status', default='Pending'),
        Field('payment_date', 'date'),
        Field('payment_mode'),
        Field('transaction_reference'),
        Field('bank_name'),
        Field('upi_id'),
        Field('notes'),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('vendor_name', 'payable_amount', 'payment_due_date'),
    required_message='Vendor name, payable amount, and due date are required',
    order_by="""CASE vp.payment_status
                    WHEN 'Overdue' THEN 1
                    WHEN 'Pending' THEN 2
                    WHEN 'Paid' THEN 3
                    ELSE 4
                END, vp.payment_due_date ASC""",
    select_from="""SELECT vp.*, s.company_name AS supplier_full_name, s.city AS supplier_city
                   FROM vendor_payout_master vp
                   LEFT JOIN suppliers s ON vp.supplier_id = s.id""",
    filters=[
        ListFilter(('status',), 'vp.payment_status = %s'),
        ListFilter(('vendor_name', 'vendorName'), 'vp.vendor_name ILIKE %s', like=True),
        ListFilter(('from_date', 'fromDate'), 'vp.payment_due_date >= %s'),
        ListFilter(('to_date', 'toDate'), 'vp.payment_due_date <= %s'),
    ],
    status_column='payment_status',
    toggleable=False,
    validators=(_one_of('payment_status', PAYOUT_STATUSES, 'Payment status'),),
    before_insert=_payout_status_on_insert,
)

EXPENSES = MasterResource(
    'expense-tracking', 'expense_tracking_master', 'expenses', 'expense', 'Expense',
    [
        Field('expense_category', aliases=('category',)),
        Field('trip_id'),
        Field('booking_reference'),
        Field('expense_amount', 'decimal', aliases=('amount',)),
        Field('payment_status', default='Pending'),
        Field('payment_date', 'date'),
        Field('vendor_name'),
        Field('vendor_payout_id', 'int'),
        Field('description'),
        Field('notes'),
        Field('receipt_url'),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('expense_category', 'expense_amount'),
    required_message='Category and amount are required',
    filters=[
        ListFilter(('category',), 'expense_category = %s'),
        ListFilter(('trip_id', 'tripId'), 'trip_id = %s'),
        ListFilter(('status',), 'payment_status = %s'),
    ],
    status_column='payment_status',
    toggleable=False,
)

PROFIT_CALCULATIONS = MasterResource(
    'profit-calculation', 'profit_calculation_master', 'profitCalculations',
    'profitCalculation', 'Profit calculation',
    [
        Field('trip_id'),
        Field('booking_reference'),
        Field('customer_name'),
        Field('total_revenue', 'decimal', default=Decimal('0')),
        Field('total_expenses', 'decimal'),
        Field('total_vendor_payouts', 'decimal'),
        Field('gross_profit', 'decimal'),
        Field('profit_margin', 'decimal'),
        Field('status', default='Draft'),
        Field('notes'),
        Field('created_by', default=_created_by, updatable=False),
    ],
    required=('trip_id',),
    required_message='Trip ID is required',
    filters=[
        ListFilter(('trip_id', 'tripId'), 'trip_id = %s'),
        ListFilter(('status',), 'status = %s'),
    ],
    toggleable=False,
    before_insert=_profit_on_insert,
    before_update=_profit_on_update,
)


RESOURCES = {
    r.name: r for r in (
        HOTELS, HOTEL_RATES, SUPPLIERS, LEAD_SOURCES, LEAD_TYPES, MEAL_PLANS,
        NOTES_INCLUSIONS, PRICING_RULES, DESTINATIONS, ROOM_TYPES, TRANSFERS,
        VENDOR_PAYOUTS, EXPENSES, PROFIT_CALCULATIONS,
    )
}


# =====================================================
# QUERIES
# =====================================================

def list_rows(cur, resource, args):
    """Rows of a resource filtered by query-string args."""
    if resource.required_filter and not any(args.get(p) for p in resource.required_filter):
        raise MasterValidationError(f"{resource.required_filter[0]} is required")

    query = resource.select_from + " WHERE 1=1"
    params = []
    if resource.active_only:
        query += f" AND {resource.status_column} = %s"
        params.append(ACTIVE)
    for list_filter in resource.filters:
        value = list_filter.value(args)
        if value is not None:
            query += f" AND {list_filter.clause}"
            params.append(value)
    query += f" ORDER BY {resource.order_by}"

    cur.execute(query, params)
    return rows_to_dicts(cur, cur.fetchall())


def fetch_row(cur, resource, item_id):
    cur.execute(f"SELECT * FROM {resource.table} WHERE id = %s", (item_id,))
    row = row_to_dict(cur, cur.fetchone())
    if row is None:
        raise MasterNotFoundError(f"{resource.label} not found")
    return row


def insert_row(cur, resource, data):
    values = resource.values_for_insert(data)
    if resource.before_insert:
        resource.before_insert(cur, values, data)

    columns = list(values)
    placeholders = ', '.join(['%s'] * len(columns))
    cur.execute(
        f"INSERT INTO {resource.table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
        [values[c] for c in columns]
    )
    row = row_to_dict(cur, cur.fetchone())
    logger.info(f"Created {resource.table} ID {row.get('id')}")
    return row


def update_row(cur, resource, item_id, data):
    values = resource.values_for_update(data)
    if resource.before_update:
        resource.before_update(cur, values, data, item_id)
    if not values:
        raise MasterValidationError('No valid fields to update')

    assignments = ', '.join(f"{column} = %s" for column in values)
    cur.execute(
        f"UPDATE {resource.table} SET {assignments}, updated_at = NOW() WHERE id = %s RETURNING *",
        list(values.values()) + [item_id]
    )
    row = row_to_dict(cur, cur.fetchone())
    if row is None:
        raise MasterNotFoundError(f"{resource.label} not found")
    return row


def set_status(cur, resource, item_id, status):
    cur.execute(
        f"UPDATE {resource.table} SET {resource.status_column} = %s, updated_at = NOW() "
        f"WHERE id = %s RETURNING id",
        (status, item_id)
    )
    if not cur.fetchone():
        raise MasterNotFoundError(f"{resource.label} not found")


def delete_row(cur, resource, item_id):
    """Hard delete, or status Inactive for soft-deleting resources."""
    if resource.soft_delete:
        set_status(cur, resource, item_id, INACTIVE)
        return
    cur.execute(f"DELETE FROM {resource.table} WHERE id = %s RETURNING id", (item_id,))
    if not cur.fetchone():
        raise MasterNotFoundError(f"{resource.label} not found")


def status_summary(cur):
    """Vendor payout count and amount per payment status."""
    cur.execute(
        """SELECT payment_status, COUNT(*) AS count, COALESCE(SUM(payable_amount), 0) AS total
           FROM vendor_payout_master
           GROUP BY payment_status
           ORDER BY payment_status"""
    )
    return rows_to_dicts(cur, cur.fetchall())


def category_summary(cur, trip_id=None):
    """Expense count and amount per category, optionally for one trip."""
    query = """SELECT expense_category, COUNT(*) AS count, COALESCE(SUM(expense_amount), 0) AS total
               FROM expense_tracking_master"""
    params = []
    if trip_id:
        query += " WHERE trip_id = %s"
        params.append(trip_id)
    query += " GROUP BY expense_category ORDER BY expense_category"
    cur.execute(query, params)
    return rows_to_dicts(cur, cur.fetchall())
