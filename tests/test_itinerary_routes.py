"""
Itinerary, day and event routes, export and quote.
"""
from datetime import date
from decimal import Decimal
import unittest
from unittest import mock

import app as app_module
from fake_db import AppTestCase

ITINERARY_COLUMNS = ('id', 'name', 'destinations', 'start_date', 'end_date',
                     'adults', 'children', 'cover_photo', 'package_terms')
DAY_COLUMNS = ('id', 'itinerary_id', 'day_number', 'title', 'date', 'location')
EVENT_COLUMNS = ('id', 'day_id', 'title', 'subtitle', 'description', 'event_data', 'sort_order')


def itinerary_row(**overrides):
    row = {
        'id': 1, 'name': 'Goa Escape', 'destinations': 'Goa', 'start_date': date(2025, 5, 1),
        'end_date': date(2025, 5, 3), 'adults': 2, 'children': 0, 'cover_photo': None,
        'package_terms': [],
    }
    row.update(overrides)
    return tuple(row[c] for c in ITINERARY_COLUMNS)


class ItineraryRouteTests(AppTestCase):

    def test_create(self):
        self.db.on('INSERT INTO itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        response = self.client.post('/api/itineraries', json={
            'name': 'Goa Escape', 'destinations': ['Goa', 'Panaji'],
            'startDate': '2025-05-01', 'endDate': '2025-05-03',
            'packageTerms': [{'title': 'Cancellation'}],
        })
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body['itinerary']['start_date'], '2025-05-01')

        sql, params = self.db.statements('INSERT INTO itineraries')[0]
        self.assertIn('package_terms', sql)
        terms = [p for p in params if hasattr(p, 'adapted')][0]
        self.assertEqual(terms.adapted[0]['type'], 'Add tips')
        self.assertEqual(len(self.db.statements('INSERT INTO destinations')), 2)
        self.assertEqual(self.db.commits, 1)

    def test_create_requires_name(self):
        response = self.client.post('/api/itineraries', json={'destinations': 'Goa'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], 'Itinerary name is required')
        self.assertEqual(self.db.executed, [])

    def test_create_rejects_reversed_dates(self):
        response = self.client.post('/api/itineraries', json={
            'name': 'Goa', 'startDate': '2025-05-03', 'endDate': '2025-05-01',
        })
        self.assertEqual(response.status_code, 400)

    def test_list_with_search(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        response = self.client.get('/api/itineraries?search=goa')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.get_json()['itineraries']), 1)
        sql, params = self.db.statements('SELECT * FROM itineraries')[0]
        self.assertIn('ILIKE', sql)
        self.assertEqual(params, ['%goa%', '%goa%'])

    def test_get_missing(self):
        response = self.client.get('/api/itineraries/42')
        self.assertEqual(response.status_code, 404)

    def test_update_checks_dates_against_stored_row(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        response = self.client.put('/api/itineraries/1', json={'endDate': '2025-04-01'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.statements('UPDATE itineraries'), [])

    def test_update(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        self.db.on('UPDATE itineraries', ITINERARY_COLUMNS, [itinerary_row(adults=4)])
        response = self.client.put('/api/itineraries/1', json={'adults': 4})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['itinerary']['adults'], 4)
        sql, params = self.db.statements('UPDATE itineraries')[0]
        self.assertIn('adults = %s, updated_at = NOW()', sql)
        self.assertEqual(params, [4, 1])

    def test_delete(self):
        self.db.on('DELETE FROM itineraries', ('id',), [(1,)])
        response = self.client.delete('/api/itineraries/1')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.commits, 1)


class DayRouteTests(AppTestCase):

    def test_add_day_numbers_after_last(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        self.db.on('MAX(day_number)', ('max',), [(3,)])
        self.db.on('INSERT INTO itinerary_days', DAY_COLUMNS,
                   [(9, 1, 4, 'Day 4', None, '')])
        self.db.on('INSERT INTO itinerary_events', EVENT_COLUMNS,
                   [(20, 9, 'Details', '', '', {'description': ''}, 0)])
        response = self.client.post('/api/itineraries/1/days', json={'addDetailsEvent': True})
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body['day']['day_number'], 4)
        self.assertEqual(body['detailsEvent']['title'], 'Details')
        params = self.db.statements('INSERT INTO itinerary_days')[0][1]
        self.assertEqual(params[1:3], (4, 'Day 4'))

    def test_add_day_to_missing_itinerary(self):
        response = self.client.post('/api/itineraries/5/days', json={})
        self.assertEqual(response.status_code, 404)

    def test_add_day_rejects_non_positive_number(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        for number in (-3, 0, 'two'):
            response = self.client.post('/api/itineraries/1/days', json={'dayNumber': number})
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.get_json()['error'], 'Day number must be a positive integer')
        self.assertEqual(self.db.statements('INSERT INTO itinerary_days'), [])

    def test_add_day_with_explicit_number(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        self.db.on('INSERT INTO itinerary_days', DAY_COLUMNS, [(9, 1, 2, 'Day 2', None, '')])
        response = self.client.post('/api/itineraries/1/days', json={'day_number': '2'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.db.statements('MAX(day_number)'), [])
        self.assertEqual(self.db.statements('INSERT INTO itinerary_days')[0][1][1], 2)

    def test_generate_days(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        self.db.on('SELECT COUNT(*) FROM itinerary_days', ('count',), [(0,)])
        self.db.on('INSERT INTO itinerary_days', DAY_COLUMNS, [
            (1, 1, 1, 'Day 1', date(2025, 5, 1), ''),
            (2, 1, 2, 'Day 2', date(2025, 5, 2), ''),
            (3, 1, 3, 'Day 3', date(2025, 5, 3), ''),
        ])
        response = self.client.post('/api/itineraries/1/days/generate')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(self.db.statements('INSERT INTO itinerary_days')), 3)
        self.assertEqual(response.get_json()['message'], '3 days generated')

    def test_generate_refuses_when_days_exist(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        self.db.on('SELECT COUNT(*) FROM itinerary_days', ('count',), [(2,)])
        response = self.client.post('/api/itineraries/1/days/generate')
        self.assertEqual(response.status_code, 409)

    def test_generate_needs_dates(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS,
                   [itinerary_row(start_date=None, end_date=None)])
        self.db.on('SELECT COUNT(*) FROM itinerary_days', ('count',), [(0,)])
        response = self.client.post('/api/itineraries/1/days/generate')
        self.assertEqual(response.status_code, 400)

    def test_update_day(self):
        self.db.on('UPDATE itinerary_days', DAY_COLUMNS, [(9, 1, 2, 'Beach day', None, 'Goa')])
        response = self.client.put('/api/itineraries/1/days', json={'dayId': 9, 'title': 'Beach day'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.statements('UPDATE itinerary_days')[0][1], ['Beach day', 9, 1])

    def test_delete_day_requires_id(self):
        response = self.client.delete('/api/itineraries/1/days')
        self.assertEqual(response.status_code, 400)

    def test_delete_missing_day(self):
        response = self.client.delete('/api/itineraries/1/days?dayId=4')
        self.assertEqual(response.status_code, 404)


class EventRouteTests(AppTestCase):

    def test_create_accommodation_registers_hotel(self):
        self.db.on('SELECT id FROM itinerary_days', ('id',), [(9,)])
        self.db.on('MAX(sort_order)', ('max',), [(2,)])
        self.db.on('INSERT INTO itinerary_events', EVENT_COLUMNS,
                   [(30, 9, 'Accommodation', '', '', {}, 3)])
        self.db.on('INSERT INTO hotels', ('id',), [(7,)])
        response = self.client.post('/api/itineraries/days/9/events', json={
            'title': 'Accommodation',
            'eventData': {'type': 'Manual', 'hotelName': 'Sea View', 'destination': 'Goa',
                          'roomCounts': {'double': '1'}},
        })
        self.assertEqual(response.status_code, 201)
        params = self.db.statements('INSERT INTO itinerary_events')[0][1]
        self.assertEqual(params[4].adapted['roomCounts']['double'], '1')
        self.assertEqual(params[5], 3)
        self.assertEqual(len(self.db.statements('INSERT INTO hotels')), 1)
        self.assertEqual(len(self.db.statements('INSERT INTO destinations')), 1)

    def test_create_rejects_unknown_type(self):
        response = self.client.post('/api/itineraries/days/9/events', json={'title': 'Cruise'})
        self.assertEqual(response.status_code, 400)

    def test_create_rejects_two_room_types(self):
        response = self.client.post('/api/itineraries/days/9/events', json={
            'title': 'Accommodation',
            'accommodationData': {'roomCounts': {'single': '1', 'double': '1'}},
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('Only one room type', response.get_json()['error'])

    def test_create_rejects_non_numeric_room_count(self):
        self.db.on('SELECT id FROM itinerary_days', ('id',), [(9,)])
        response = self.client.post('/api/itineraries/days/9/events', json={
            'title': 'Accommodation',
            'eventData': {'hotelName': 'Sea View', 'roomCounts': {'double': 'NaN'}},
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('Invalid room count for double', response.get_json()['error'])
        self.assertEqual(self.db.statements('INSERT INTO itinerary_events'), [])

    def test_second_details_event_conflicts(self):
        self.db.on('SELECT id FROM itinerary_days', ('id',), [(9,)])
        self.db.on("title = 'Details'", ('id',), [(11,)])
        response = self.client.post('/api/itineraries/days/9/events', json={'title': 'Details'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.db.statements('INSERT INTO itinerary_events'), [])

    def test_create_on_missing_day(self):
        response = self.client.post('/api/itineraries/days/9/events', json={'title': 'Leisure'})
        self.assertEqual(response.status_code, 404)

    def test_list_orders_details_first(self):
        self.db.on('SELECT * FROM itinerary_events', EVENT_COLUMNS, [])
        response = self.client.get('/api/itineraries/days/9/events')
        self.assertEqual(response.status_code, 200)
        sql = self.db.statements('SELECT * FROM itinerary_events')[0][0]
        self.assertIn("CASE WHEN title = 'Details' THEN 0 ELSE 1 END", sql)

    def test_update_event_data(self):
        self.db.on('SELECT * FROM itinerary_events', EVENT_COLUMNS,
                   [(30, 9, 'Activity', '', '', {'name': 'Scuba'}, 1)])
        self.db.on('UPDATE itinerary_events', EVENT_COLUMNS,
                   [(30, 9, 'Activity', '', '', {'name': 'Kayak'}, 1)])
        response = self.client.put('/api/itineraries/days/9/events', json={
            'eventId': 30, 'eventData': {'name': 'Kayak', 'price': '900'},
        })
        self.assertEqual(response.status_code, 200)
        sql, params = self.db.statements('UPDATE itinerary_events')[0]
        self.assertIn('event_data = %s', sql)
        self.assertEqual(params[0].adapted['price'], '900')

    def test_update_requires_event_id(self):
        response = self.client.put('/api/itineraries/days/9/events', json={'title': 'Meal'})
        self.assertEqual(response.status_code, 400)

    def test_delete_event(self):
        self.db.on('DELETE FROM itinerary_events', ('id',), [(30,)])
        response = self.client.delete('/api/itineraries/days/9/events?eventId=30')
        self.assertEqual(response.status_code, 200)


class ExportAndQuoteTests(AppTestCase):

    def _script_tree(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS, [itinerary_row()])
        self.db.on('SELECT * FROM itinerary_days', DAY_COLUMNS,
                   [(9, 1, 1, 'Day 1', date(2025, 5, 1), 'Goa')])
        self.db.on('SELECT e.* FROM itinerary_events', EVENT_COLUMNS, [
            (30, 9, 'Transportation', '', '', {'name': 'Airport pickup', 'price': '1000'}, 1),
        ])

    def test_export_returns_pdf(self):
        self._script_tree()
        with mock.patch.object(app_module, 'render_itinerary_pdf', return_value=b'%PDF-1.4 test') as render:
            response = self.client.get('/api/itineraries/1/export')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, 'application/pdf')
        self.assertIn('attachment; filename="Goa_Escape_', response.headers['Content-Disposition'])
        itinerary, days = render.call_args[0][:2]
        self.assertEqual(itinerary['name'], 'Goa Escape')
        self.assertEqual(days[0]['events'][0]['id'], 30)

    def test_export_missing_itinerary(self):
        response = self.client.get('/api/itineraries/3/export')
        self.assertEqual(response.status_code, 404)

    def test_quote(self):
        self._script_tree()
        response = self.client.get('/api/itineraries/1/quote')
        self.assertEqual(response.status_code, 200)
        quote = response.get_json()['quote']
        self.assertEqual(quote['total'], 1000.0)
        self.assertEqual(quote['perPerson'], 500.0)

    def test_quote_without_travellers(self):
        self.db.on('SELECT * FROM itineraries', ITINERARY_COLUMNS,
                   [itinerary_row(adults=0, children=0)])
        response = self.client.get('/api/itineraries/1/quote')
        self.assertEqual(response.status_code, 400)


class HealthTests(AppTestCase):

    def test_health(self):
        self.db.on('SELECT 1', ('?column?',), [(1,)])
        response = self.client.get('/health')
        self.assertEqual(response.get_json(), {'status': 'ok', 'database': 'connected'})

    def test_health_without_database(self):
        with mock.patch.object(app_module, 'get_db', side_effect=RuntimeError('down')):
            response = self.client.get('/health')
        self.assertEqual(response.status_code, 503)


if __name__ == '__main__':
    unittest.main()
