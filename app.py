"""
Travel Back-Office - Flask Backend
==================================
Admin masters, finance ledgers and the itinerary builder over PostgreSQL.

Masters (hotels, hotel rates, suppliers, lead sources, lead types, meal
plans, notes/inclusions, pricing/tax rules, destinations, room types,
transfers) and finance ledgers (vendor payouts, expenses, profit
calculations) share one CRUD contract driven by master_data.RESOURCES.

Itinerary builder:
- Itineraries, days and typed events (Details, Accommodation, Activity,
  Transportation, Meal, Flight, Leisure)
- Day generation from the itinerary date range
- PDF export and priced quote of a whole itinerary
"""

from datetime import date, datetime
from decimal import Decimal
import logging

from flask import Flask, Response, request, jsonify
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from psycopg2 import errors as pg_errors
from psycopg2.extras import Json

import config
import master_data
from db import get_db, row_to_dict, rows_to_dicts
from master_data import (
    RESOURCES,
    MasterDataError,
    MasterNotFoundError,
)
from itinerary_engine import (
    ItineraryError,
    DuplicateEventError,
    ensure_destinations,
    export_filename,
    itinerary_values,
    next_sort_order,
    normalize_event_data,
    parse_date,
    plan_days,
    sync_event_masters,
    validate_event_title,
)
from itinerary_pdf import render_itinerary_pdf
from pricing_engine import ItineraryQuoteEngine, PricingEngineError

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


class BackOfficeJSONProvider(DefaultJSONProvider):
    """Decimal as float, dates as ISO strings."""

    @staticmethod
    def default(obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return DefaultJSONProvider.default(obj)


app = Flask(__name__)
app.secret_key = config.SECRET_KEY
app.json = BackOfficeJSONProvider(app)
CORS(app)

INVALID_CONTENT_TYPE = 'Invalid content type. Expected application/json'


# =====================================================
# REQUEST HELPERS
# =====================================================

def read_json():
    """(body, None) for a JSON object body, otherwise (None, error response)."""
    if not request.is_json:
        return None, (jsonify({'error': INVALID_CONTENT_TYPE}), 400)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, (jsonify({'error': 'Invalid JSON in request body'}), 400)
    return data, None


def parse_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def error_status(e):
    """HTTP status for a domain error."""
    if isinstance(e, MasterNotFoundError):
        return 404
    if isinstance(e, DuplicateEventError):
        return 409
    return 400


# =====================================================
# MASTER DATA (generic CRUD)
# =====================================================

def list_master(resource_name):
    resource = RESOURCES[resource_name]
    db = get_db()
    cur = db.cursor()
    try:
        rows = master_data.list_rows(cur, resource, request.args)
        return jsonify({resource.collection_key: rows})
    except MasterDataError as e:
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        logger.error(f"Error listing {resource.name}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


def get_master(resource_name, item_id):
    resource = RESOURCES[resource_name]
    db = get_db()
    cur = db.cursor()
    try:
        row = master_data.fetch_row(cur, resource, item_id)
        return jsonify({resource.item_key: row})
    except MasterDataError as e:
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        logger.error(f"Error fetching {resource.name} {item_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


def create_master(resource_name):
    resource = RESOURCES[resource_name]
    data, error = read_json()
    if error:
        return error

    db = get_db()
    cur = db.cursor()
    try:
        row = master_data.insert_row(cur, resource, data)
        db.commit()
        return jsonify({
            resource.item_key: row,
            'message': f"{resource.label} created successfully",
        }), 201
    except pg_errors.UniqueViolation:
        db.rollback()
        return jsonify({'error': f"{resource.unique_label} already exists"}), 409
    except MasterDataError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating {resource.name}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


def update_master(resource_name, item_id=None):
    resource = RESOURCES[resource_name]
    data, error = read_json()
    if error:
        return error
    item_id = item_id or parse_id(data.get('id'))
    if not item_id:
        return jsonify({'error': f"{resource.label} ID is required"}), 400

    db = get_db()
    cur = db.cursor()
    try:
        row = master_data.update_row(cur, resource, item_id, data)
        db.commit()
        return jsonify({
            resource.item_key: row,
            'message': f"{resource.label} updated successfully",
        })
    except pg_errors.UniqueViolation:
        db.rollback()
        return jsonify({'error': f"{resource.unique_label} already exists"}), 409
    except MasterDataError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating {resource.name} {item_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


def toggle_master(resource_name, item_id):
    resource = RESOURCES[resource_name]
    data, error = read_json()
    if error:
        return error
    if 'active' not in data:
        return jsonify({'error': 'active is required'}), 400

    status = master_data.ACTIVE if master_data.as_flag(data['active']) else master_data.INACTIVE
    db = get_db()
    cur = db.cursor()
    try:
        master_data.set_status(cur, resource, item_id, status)
        db.commit()
        return jsonify({'message': 'Toggled', 'status': status})
    except MasterDataError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error toggling {resource.name} {item_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


def delete_master(resource_name, item_id=None):
    resource = RESOURCES[resource_name]
    item_id = item_id or parse_id(request.args.get('id'))
    if not item_id:
        return jsonify({'error': f"{resource.label} ID is required"}), 400

    db = get_db()
    cur = db.cursor()
    try:
        master_data.delete_row(cur, resource, item_id)
        db.commit()
        if resource.soft_delete:
            return jsonify({'message': f"{resource.label} deleted (set to Inactive)"})
        return jsonify({'message': f"{resource.label} deleted successfully"})
    except MasterDataError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting {resource.name} {item_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


# =====================================================
# FINANCE SUMMARIES
# =====================================================

@app.route('/api/vendor-payouts/summary', methods=['GET'])
def vendor_payout_summary():
    db = get_db()
    cur = db.cursor()
    try:
        by_status = master_data.status_summary(cur)
        total = sum((row['total'] for row in by_status), Decimal('0'))
        return jsonify({'summary': by_status, 'totalPayable': total})
    except Exception as e:
        logger.error(f"Error summarising vendor payouts: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/expense-tracking/summary', methods=['GET'])
def expense_summary():
    db = get_db()
    cur = db.cursor()
    try:
        by_category = master_data.category_summary(cur, request.args.get('trip_id'))
        total = sum((row['total'] for row in by_category), Decimal('0'))
        return jsonify({'summary': by_category, 'totalExpenses': total})
    except Exception as e:
        logger.error(f"Error summarising expenses: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


def register_master_routes():
    for resource in RESOURCES.values():
        base = f"/api/{resource.name}"
        endpoint = resource.name.replace('-', '_')
        defaults = {'resource_name': resource.name}

        app.add_url_rule(base, f"list_{endpoint}", list_master,
                         methods=['GET'], defaults=defaults)
        app.add_url_rule(base, f"create_{endpoint}", create_master,
                         methods=['POST'], defaults=defaults)
        app.add_url_rule(base, f"update_{endpoint}_by_body", update_master,
                         methods=['PUT'], defaults=defaults)
        app.add_url_rule(base, f"delete_{endpoint}_by_query", delete_master,
                         methods=['DELETE'], defaults=defaults)
        app.add_url_rule(f"{base}/<int:item_id>", f"get_{endpoint}", get_master,
                         methods=['GET'], defaults=defaults)
        app.add_url_rule(f"{base}/<int:item_id>", f"update_{endpoint}", update_master,
                         methods=['PUT'], defaults=defaults)
        app.add_url_rule(f"{base}/<int:item_id>", f"delete_{endpoint}", delete_master,
                         methods=['DELETE'], defaults=defaults)
        if resource.toggleable:
            app.add_url_rule(f"{base}/<int:item_id>/toggle", f"toggle_{endpoint}", toggle_master,
                             methods=['PATCH'], defaults=defaults)


register_master_routes()


# =====================================================
# ITINERARIES
# =====================================================

def _fetch_itinerary(cur, itinerary_id):
    cur.execute("SELECT * FROM itineraries WHERE id = %s", (itinerary_id,))
    return row_to_dict(cur, cur.fetchone())


def _itinerary_params(values):
    if 'package_terms' in values:
        values = dict(values, package_terms=Json(values['package_terms']))
    return values


def _load_itinerary_tree(cur, itinerary_id):
    """Itinerary row plus its days, each carrying its events."""
    itinerary = _fetch_itinerary(cur, itinerary_id)
    if not itinerary:
        return None, []

    cur.execute(
        "SELECT * FROM itinerary_days WHERE itinerary_id = %s ORDER BY day_number, id",
        (itinerary_id,)
    )
    days = rows_to_dicts(cur, cur.fetchall())

    cur.execute(
        """SELECT e.* FROM itinerary_events e
           JOIN itinerary_days d ON e.day_id = d.id
           WHERE d.itinerary_id = %s
           ORDER BY e.day_id, CASE WHEN e.title = 'Details' THEN 0 ELSE 1 END, e.sort_order, e.id""",
        (itinerary_id,)
    )
    events = rows_to_dicts(cur, cur.fetchall())

    by_day = {}
    for event in events:
        by_day.setdefault(event['day_id'], []).append(event)
    for day in days:
        day['events'] = by_day.get(day['id'], [])
    return itinerary, days


@app.route('/api/itineraries', methods=['GET'])
def list_itineraries():
    search = (request.args.get('search') or '').strip()
    db = get_db()
    cur = db.cursor()
    try:
        query = "SELECT * FROM itineraries"
        params = []
        if search:
            query += " WHERE name ILIKE %s OR destinations ILIKE %s"
            params = [f"%{search}%", f"%{search}%"]
        query += " ORDER BY created_at DESC, id DESC"
        cur.execute(query, params)
        return jsonify({'itineraries': rows_to_dicts(cur, cur.fetchall())})
    except Exception as e:
        logger.error(f"Error listing itineraries: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries', methods=['POST'])
def create_itinerary():
    data, error = read_json()
    if error:
        return error
    try:
        values = itinerary_values(data)
    except ItineraryError as e:
        return jsonify({'error': str(e)}), error_status(e)
    values['created_by'] = (data.get('created_by') or data.get('createdBy')
                            or config.CREATED_BY_DEFAULT)

    db = get_db()
    cur = db.cursor()
    try:
        params = _itinerary_params(values)
        columns = list(params)
        cur.execute(
            f"INSERT INTO itineraries ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING *",
            [params[c] for c in columns]
        )
        itinerary = row_to_dict(cur, cur.fetchone())
        ensure_destinations(cur, values.get('destinations'))
        db.commit()

        logger.info(f"Created itinerary ID {itinerary['id']}: {itinerary['name']}")
        return jsonify({'itinerary': itinerary, 'message': 'Itinerary created successfully'}), 201
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating itinerary: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>', methods=['GET'])
def get_itinerary(itinerary_id):
    db = get_db()
    cur = db.cursor()
    try:
        itinerary = _fetch_itinerary(cur, itinerary_id)
        if not itinerary:
            return jsonify({'error': 'Itinerary not found'}), 404
        return jsonify({'itinerary': itinerary})
    except Exception as e:
        logger.error(f"Error fetching itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>', methods=['PUT'])
def update_itinerary(itinerary_id):
    data, error = read_json()
    if error:
        return error

    db = get_db()
    cur = db.cursor()
    try:
        current = _fetch_itinerary(cur, itinerary_id)
        if not current:
            return jsonify({'error': 'Itinerary not found'}), 404

        values = itinerary_values(data, current)
        if not values:
            return jsonify({'error': 'No fields to update'}), 400

        params = _itinerary_params(values)
        assignments = ', '.join(f"{column} = %s" for column in params)
        cur.execute(
            f"UPDATE itineraries SET {assignments}, updated_at = NOW() WHERE id = %s RETURNING *",
            list(params.values()) + [itinerary_id]
        )
        itinerary = row_to_dict(cur, cur.fetchone())
        if 'destinations' in values:
            ensure_destinations(cur, values['destinations'])
        db.commit()

        return jsonify({'itinerary': itinerary, 'message': 'Itinerary updated successfully'})
    except ItineraryError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>', methods=['DELETE'])
def delete_itinerary(itinerary_id):
    db = get_db()
    cur = db.cursor()
    try:
        cur.execute("DELETE FROM itineraries WHERE id = %s RETURNING id", (itinerary_id,))
        if not cur.fetchone():
            db.rollback()
            return jsonify({'error': 'Itinerary not found'}), 404
        db.commit()
        logger.info(f"Deleted itinerary ID {itinerary_id}")
        return jsonify({'message': 'Itinerary deleted successfully'})
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


# =====================================================
# ITINERARY DAYS
# =====================================================

def _insert_details_event(cur, day_id):
    cur.execute(
        """INSERT INTO itinerary_events (day_id, title, subtitle, description, event_data, sort_order)
           VALUES (%s, 'Details', '', '', %s, 0) RETURNING *""",
        (day_id, Json(normalize_event_data('Details', {})))
    )
    return row_to_dict(cur, cur.fetchone())


@app.route('/api/itineraries/<int:itinerary_id>/days', methods=['GET'])
def list_days(itinerary_id):
    db = get_db()
    cur = db.cursor()
    try:
        cur.execute(
            "SELECT * FROM itinerary_days WHERE itinerary_id = %s ORDER BY day_number, id",
            (itinerary_id,)
        )
        return jsonify({'days': rows_to_dicts(cur, cur.fetchall())})
    except Exception as e:
        logger.error(f"Error listing days of itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>/days', methods=['POST'])
def create_day(itinerary_id):
    data, error = read_json()
    if error:
        return error

    db = get_db()
    cur = db.cursor()
    try:
        if not _fetch_itinerary(cur, itinerary_id):
            return jsonify({'error': 'Itinerary not found'}), 404

        raw_number = data.get('dayNumber', data.get('day_number'))
        if raw_number not in (None, ''):
            day_number = parse_id(raw_number)
            if day_number is None or day_number < 1:
                return jsonify({'error': 'Day number must be a positive integer'}), 400
        else:
            cur.execute(
                "SELECT COALESCE(MAX(day_number), 0) FROM itinerary_days WHERE itinerary_id = %s",
                (itinerary_id,)
            )
            day_number = cur.fetchone()[0] + 1

        title = (data.get('title') or '').strip() or f"Day {day_number}"
        day_date = parse_date(data.get('date'), 'date')
        location = (data.get('location') or '').strip()

        cur.execute(
            """INSERT INTO itinerary_days (itinerary_id, day_number, title, date, location)
               VALUES (%s, %s, %s, %s, %s) RETURNING *""",
            (itinerary_id, day_number, title, day_date, location)
        )
        day = row_to_dict(cur, cur.fetchone())

        response = {'day': day, 'message': 'Day added successfully'}
        if data.get('addDetailsEvent') or data.get('add_details_event'):
            response['detailsEvent'] = _insert_details_event(cur, day['id'])

        db.commit()
        return jsonify(response), 201
    except ItineraryError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error adding day to itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>/days', methods=['PUT'])
def update_day(itinerary_id):
    data, error = read_json()
    if error:
        return error
    day_id = parse_id(data.get('dayId', data.get('id')))
    if not day_id:
        return jsonify({'error': 'Day ID is required'}), 400

    db = get_db()
    cur = db.cursor()
    try:
        values = {}
        if 'title' in data:
            values['title'] = (data.get('title') or '').strip()
        if 'date' in data:
            values['date'] = parse_date(data.get('date'), 'date')
        if 'location' in data:
            values['location'] = (data.get('location') or '').strip()
        if 'dayNumber' in data or 'day_number' in data:
            day_number = parse_id(data.get('dayNumber', data.get('day_number')))
            if not day_number or day_number < 1:
                return jsonify({'error': 'Day number must be a positive integer'}), 400
            values['day_number'] = day_number
        if not values:
            return jsonify({'error': 'No fields to update'}), 400

        assignments = ', '.join(f"{column} = %s" for column in values)
        cur.execute(
            f"UPDATE itinerary_days SET {assignments}, updated_at = NOW() "
            f"WHERE id = %s AND itinerary_id = %s RETURNING *",
            list(values.values()) + [day_id, itinerary_id]
        )
        day = row_to_dict(cur, cur.fetchone())
        if not day:
            db.rollback()
            return jsonify({'error': 'Day not found'}), 404
        db.commit()
        return jsonify({'day': day, 'message': 'Day updated successfully'})
    except ItineraryError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating day {day_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>/days', methods=['DELETE'])
def delete_day(itinerary_id):
    day_id = parse_id(request.args.get('dayId'))
    if not day_id:
        return jsonify({'error': 'Day ID is required'}), 400

    db = get_db()
    cur = db.cursor()
    try:
        cur.execute(
            "DELETE FROM itinerary_days WHERE id = %s AND itinerary_id = %s RETURNING id",
            (day_id, itinerary_id)
        )
        if not cur.fetchone():
            db.rollback()
            return jsonify({'error': 'Day not found'}), 404
        db.commit()
        return jsonify({'message': 'Day deleted successfully'})
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting day {day_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/<int:itinerary_id>/days/generate', methods=['POST'])
def generate_days(itinerary_id):
    db = get_db()
    cur = db.cursor()
    try:
        itinerary = _fetch_itinerary(cur, itinerary_id)
        if not itinerary:
            return jsonify({'error': 'Itinerary not found'}), 404

        cur.execute("SELECT COUNT(*) FROM itinerary_days WHERE itinerary_id = %s", (itinerary_id,))
        if cur.fetchone()[0]:
            return jsonify({'error': 'Itinerary already has days'}), 409

        planned = plan_days(itinerary.get('start_date'), itinerary.get('end_date'))
        days = []
        for day in planned:
            cur.execute(
                """INSERT INTO itinerary_days (itinerary_id, day_number, title, date, location)
                   VALUES (%s, %s, %s, %s, '') RETURNING *""",
                (itinerary_id, day['day_number'], day['title'], day['date'])
            )
            days.append(row_to_dict(cur, cur.fetchone()))
        db.commit()

        logger.info(f"Generated {len(days)} days for itinerary ID {itinerary_id}")
        return jsonify({'days': days, 'message': f"{len(days)} days generated"}), 201
    except ItineraryError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error generating days for itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


# =====================================================
# ITINERARY EVENTS
# =====================================================

def _event_payload(data):
    """(present, raw event data) under any of the accepted keys."""
    for key in ('eventData', 'event_data', 'accommodationData'):
        if key in data:
            return True, data[key]
    return False, None


def _has_details_event(cur, day_id, exclude_id=None):
    query = "SELECT id FROM itinerary_events WHERE day_id = %s AND title = 'Details'"
    params = [day_id]
    if exclude_id:
        query += " AND id <> %s"
        params.append(exclude_id)
    cur.execute(query, params)
    return cur.fetchone() is not None


@app.route('/api/itineraries/days/<int:day_id>/events', methods=['GET'])
def list_events(day_id):
    db = get_db()
    cur = db.cursor()
    try:
        cur.execute(
            """SELECT * FROM itinerary_events WHERE day_id = %s
               ORDER BY CASE WHEN title = 'Details' THEN 0 ELSE 1 END, sort_order, id""",
            (day_id,)
        )
        return jsonify({'events': rows_to_dicts(cur, cur.fetchall())})
    except Exception as e:
        logger.error(f"Error listing events of day {day_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/days/<int:day_id>/events', methods=['POST'])
def create_event(day_id):
    data, error = read_json()
    if error:
        return error
    try:
        title = validate_event_title(data.get('title'))
        _, raw = _event_payload(data)
        event_data = normalize_event_data(title, raw)
    except ItineraryError as e:
        return jsonify({'error': str(e)}), error_status(e)

    db = get_db()
    cur = db.cursor()
    try:
        cur.execute("SELECT id FROM itinerary_days WHERE id = %s", (day_id,))
        if not cur.fetchone():
            return jsonify({'error': 'Day not found'}), 404

        if title == 'Details' and _has_details_event(cur, day_id):
            raise DuplicateEventError('This day already has a Details event')

        sort_order = parse_id(data.get('sortOrder', data.get('sort_order')))
        if sort_order is None:
            cur.execute(
                "SELECT MAX(sort_order) FROM itinerary_events WHERE day_id = %s", (day_id,)
            )
            sort_order = next_sort_order(cur.fetchone()[0])

        cur.execute(
            """INSERT INTO itinerary_events (day_id, title, subtitle, description, event_data, sort_order)
               VALUES (%s, %s, %s, %s, %s, %s) RETURNING *""",
            (day_id, title, data.get('subtitle') or '', data.get('description') or '',
             Json(event_data), sort_order)
        )
        event = row_to_dict(cur, cur.fetchone())
        sync_event_masters(cur, title, event_data)
        db.commit()

        logger.info(f"Created {title} event ID {event['id']} on day {day_id}")
        return jsonify({'event': event, 'message': 'Event added successfully'}), 201
    except ItineraryError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error adding event to day {day_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/days/<int:day_id>/events', methods=['PUT'])
def update_event(day_id):
    data, error = read_json()
    if error:
        return error
    event_id = parse_id(data.get('eventId', data.get('id')))
    if not event_id:
        return jsonify({'error': 'Event ID is required'}), 400

    db = get_db()
    cur = db.cursor()
    try:
        cur.execute(
            "SELECT * FROM itinerary_events WHERE id = %s AND day_id = %s", (event_id, day_id)
        )
        current = row_to_dict(cur, cur.fetchone())
        if not current:
            return jsonify({'error': 'Event not found'}), 404

        values = {}
        title = current['title']
        if 'title' in data:
            title = validate_event_title(data.get('title'))
            if title == 'Details' and _has_details_event(cur, day_id, exclude_id=event_id):
                raise DuplicateEventError('This day already has a Details event')
            values['title'] = title

        has_payload, raw = _event_payload(data)
        if has_payload:
            values['event_data'] = normalize_event_data(title, raw)
        elif title != current['title']:
            values['event_data'] = normalize_event_data(title, current.get('event_data'))

        for column in ('subtitle', 'description'):
            if column in data:
                values[column] = data.get(column) or ''
        if 'sortOrder' in data or 'sort_order' in data:
            values['sort_order'] = parse_id(data.get('sortOrder', data.get('sort_order'))) or 0

        if not values:
            return jsonify({'error': 'No fields to update'}), 400

        params = dict(values)
        if 'event_data' in params:
            params['event_data'] = Json(params['event_data'])
        assignments = ', '.join(f"{column} = %s" for column in params)
        cur.execute(
            f"UPDATE itinerary_events SET {assignments}, updated_at = NOW() "
            f"WHERE id = %s RETURNING *",
            list(params.values()) + [event_id]
        )
        event = row_to_dict(cur, cur.fetchone())
        if 'event_data' in values:
            sync_event_masters(cur, title, values['event_data'])
        db.commit()

        return jsonify({'event': event, 'message': 'Event updated successfully'})
    except ItineraryError as e:
        db.rollback()
        return jsonify({'error': str(e)}), error_status(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating event {event_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


@app.route('/api/itineraries/days/<int:day_id>/events', methods=['DELETE'])
def delete_event(day_id):
    event_id = parse_id(request.args.get('eventId'))
    if not event_id:
        return jsonify({'error': 'Event ID is required'}), 400

    db = get_db()
    cur = db.cursor()
    try:
        cur.execute(
            "DELETE FROM itinerary_events WHERE id = %s AND day_id = %s RETURNING id",
            (event_id, day_id)
        )
        if not cur.fetchone():
            db.rollback()
            return jsonify({'error': 'Event not found'}), 404
        db.commit()
        return jsonify({'message': 'Event deleted successfully'})
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting event {event_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


# =====================================================
# EXPORT / QUOTE
# =====================================================

@app.route('/api/itineraries/<int:itinerary_id>/export', methods=['GET'])
def export_itinerary(itinerary_id):
    db = get_db()
    cur = db.cursor()
    try:
        itinerary, days = _load_itinerary_tree(cur, itinerary_id)
        if not itinerary:
            return jsonify({'error': 'Itinerary not found'}), 404

        cur.execute(
            "SELECT name, icon_url FROM hotels WHERE icon_url IS NOT NULL AND icon_url <> ''"
        )
        hotel_images = {
            (name or '').strip().lower(): url for name, url in cur.fetchall()
        }
        cur.execute(
            "SELECT query_name, destination, photo_url FROM transfers "
            "WHERE photo_url IS NOT NULL AND photo_url <> ''"
        )
        transfer_images = {
            ((name or '').strip().lower(), (dest or '').strip().lower()): url
            for name, dest, url in cur.fetchall()
        }
    except Exception as e:
        logger.error(f"Error loading itinerary {itinerary_id} for export: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()

    try:
        pdf = render_itinerary_pdf(itinerary, days, hotel_images, transfer_images)
    except Exception as e:
        logger.error(f"Error rendering PDF for itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500

    filename = export_filename(itinerary.get('name'))
    logger.info(f"Exported itinerary ID {itinerary_id} as {filename} ({len(pdf)} bytes)")
    return Response(
        pdf,
        mimetype='application/pdf',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )


@app.route('/api/itineraries/<int:itinerary_id>/quote', methods=['GET'])
def quote_itinerary(itinerary_id):
    db = get_db()
    cur = db.cursor()
    try:
        itinerary, days = _load_itinerary_tree(cur, itinerary_id)
        if not itinerary:
            return jsonify({'error': 'Itinerary not found'}), 404

        quote = ItineraryQuoteEngine(db).quote(itinerary, days)
        logger.info(f"Quoted itinerary ID {itinerary_id}: total={quote['total']}")
        return jsonify({'quote': quote})
    except PricingEngineError as e:
        logger.error(f"Pricing engine error: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error quoting itinerary {itinerary_id}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    finally:
        db.close()


# =====================================================
# HEALTH
# =====================================================

@app.route('/health', methods=['GET'])
def health():
    try:
        db = get_db()
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return jsonify({'status': 'degraded', 'database': 'unavailable'}), 503
    try:
        cur = db.cursor()
        cur.execute("SELECT 1")
        cur.fetchone()
        return jsonify({'status': 'ok', 'database': 'connected'})
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return jsonify({'status': 'degraded', 'database': 'unavailable'}), 503
    finally:
        db.close()


# =====================================================
# ENTRY POINT
# =====================================================

if __name__ == '__main__':
    app.run(debug=config.DEBUG, host='0.0.0.0', port=config.PORT)
