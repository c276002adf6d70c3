"""
Itinerary builder rules: event data, days, fields and master auto-creation.
"""
from datetime import date
import base64
import unittest
from unittest import mock

from fake_db import FakeConnection
import itinerary_engine
from itinerary_engine import (
    InvalidEventError,
    InvalidItineraryError,
    ensure_destinations,
    ensure_hotel_for_event,
    ensure_transfer_for_event,
    export_filename,
    format_day_date,
    hotel_category_from_label,
    itinerary_values,
    next_sort_order,
    normalize_event_data,
    normalize_package_terms,
    normalize_room_counts,
    parse_destinations,
    plan_days,
    sort_events,
    strip_html,
    validate_cover_photo,
)


class EventDataTests(unittest.TestCase):

    def test_accommodation_defaults(self):
        data = normalize_event_data('Accommodation', {'hotelName': 'Sea View', 'junk': 1})
        self.assertEqual(data['hotelName'], 'Sea View')
        self.assertEqual(data['category'], '1 Star')
        self.assertEqual(data['checkin']['time'], '2:00 PM')
        self.assertEqual(data['roomCounts']['double'], '0')
        self.assertNotIn('junk', data)

    def test_accepts_json_string(self):
        data = normalize_event_data('Activity', '{"name": "Scuba", "showTime": "true"}')
        self.assertEqual(data['name'], 'Scuba')
        self.assertTrue(data['showTime'])
        self.assertEqual(data['startTime'], '1:00 PM')

    def test_nested_checkin_is_merged(self):
        data = normalize_event_data('Accommodation', {'checkin': {'date': '2025-05-01'}})
        self.assertEqual(data['checkin'], {'date': '2025-05-01', 'time': '2:00 PM', 'showTime': False})

    def test_unknown_type(self):
        with self.assertRaises(InvalidEventError):
            normalize_event_data('Cruise', {})

    def test_malformed_json(self):
        with self.assertRaises(InvalidEventError):
            normalize_event_data('Meal', '{not json')

    def test_invalid_price(self):
        with self.assertRaises(InvalidEventError):
            normalize_event_data('Flight', {'price': 'cheap'})

    def test_room_counts_are_exclusive(self):
        with self.assertRaises(InvalidEventError):
            normalize_room_counts({'single': '1', 'triple': '2'})

    def test_room_counts_blanks_become_zero(self):
        counts = normalize_room_counts({'single': '', 'double': '2'})
        self.assertEqual(counts, {'single': '0', 'double': '2', 'triple': '0',
                                  'quad': '0', 'cwb': '0', 'cnb': '0'})

    def test_negative_room_count(self):
        with self.assertRaises(InvalidEventError):
            normalize_room_counts({'double': '-1'})

    def test_non_finite_numbers(self):
        with self.assertRaises(InvalidEventError):
            normalize_room_counts({'double': 'NaN'})
        with self.assertRaises(InvalidEventError):
            normalize_room_counts({'quad': 'Infinity'})
        with self.assertRaises(InvalidEventError):
            normalize_event_data('Activity', {'price': 'NaN'})


class OrderingTests(unittest.TestCase):

    def test_details_first_then_sort_order(self):
        events = [
            {'id': 3, 'title': 'Meal', 'sort_order': 2},
            {'id': 1, 'title': 'Activity', 'sort_order': 1},
            {'id': 9, 'title': 'Details', 'sort_order': 5},
            {'id': 2, 'title': 'Flight', 'sort_order': 1},
        ]
        self.assertEqual([e['id'] for e in sort_events(events)], [9, 1, 2, 3])

    def test_next_sort_order(self):
        self.assertEqual(next_sort_order(None), 1)
        self.assertEqual(next_sort_order(4), 5)


class DayPlanningTests(unittest.TestCase):

    def test_plan_days_inclusive(self):
        days = plan_days('2025-05-01', '2025-05-03')
        self.assertEqual([d['day_number'] for d in days], [1, 2, 3])
        self.assertEqual(days[2]['title'], 'Day 3')
        self.assertEqual(days[2]['date'], date(2025, 5, 3))

    def test_plan_days_needs_both_dates(self):
        with self.assertRaises(InvalidItineraryError):
            plan_days('2025-05-01', None)

    def test_plan_days_rejects_reversed_range(self):
        with self.assertRaises(InvalidItineraryError):
            plan_days('2025-05-03', '2025-05-01')

    def test_plan_days_limit(self):
        with self.assertRaises(InvalidItineraryError):
            plan_days('2025-01-01', '2026-12-31')

    def test_format_day_date(self):
        self.assertEqual(format_day_date('2025-01-06'), 'Mon, 6 Jan 2025')
        self.assertEqual(format_day_date(None), '')


class ItineraryFieldTests(unittest.TestCase):

    def test_create_defaults(self):
        values = itinerary_values({'name': ' Goa Escape ', 'destinations': 'Goa, goa , Panaji'})
        self.assertEqual(values['name'], 'Goa Escape')
        self.assertEqual(values['destinations'], 'Goa, Panaji')
        self.assertEqual(values['adults'], 1)
        self.assertEqual(values['children'], 0)
        self.assertEqual(values['package_terms'], [])

    def test_name_required_on_create(self):
        with self.assertRaises(InvalidItineraryError):
            itinerary_values({'destinations': ['Goa']})

    def test_partial_update_only_returns_present_keys(self):
        values = itinerary_values({'children': '2'}, current={'name': 'Goa'})
        self.assertEqual(values, {'children': 2})

    def test_end_date_checked_against_stored_start(self):
        current = {'start_date': date(2025, 5, 10), 'end_date': date(2025, 5, 12)}
        with self.assertRaises(InvalidItineraryError):
            itinerary_values({'endDate': '2025-05-01'}, current=current)

    def test_negative_adults(self):
        with self.assertRaises(InvalidItineraryError):
            itinerary_values({'name': 'X', 'adults': -1})

    def test_package_terms(self):
        terms = normalize_package_terms([{'title': 'Cancellation', 'description': '<p>No refunds</p>'}])
        self.assertEqual(terms[0]['type'], 'Add tips')
        with self.assertRaises(InvalidItineraryError):
            normalize_package_terms([{'description': 'untitled'}])

    def test_destinations_reject_non_list(self):
        with self.assertRaises(InvalidItineraryError):
            parse_destinations(42)

    def test_cover_photo_url_and_data_url(self):
        self.assertEqual(validate_cover_photo('https://img.example/cover.jpg'),
                         'https://img.example/cover.jpg')
        payload = base64.b64encode(b'\x89PNG fake').decode()
        self.assertTrue(validate_cover_photo(f'data:image/png;base64,{payload}').startswith('data:'))
        self.assertIsNone(validate_cover_photo(''))

    def test_cover_photo_too_large(self):
        payload = base64.b64encode(b'x' * 64).decode()
        with mock.patch.object(itinerary_engine.config, 'MAX_COVER_PHOTO_BYTES', 16):
            with self.assertRaises(InvalidItineraryError):
                validate_cover_photo(f'data:image/jpeg;base64,{payload}')

    def test_cover_photo_rejects_other_schemes(self):
        with self.assertRaises(InvalidItineraryError):
            validate_cover_photo('ftp://files/cover.jpg')


class TextTests(unittest.TestCase):

    def test_strip_html(self):
        self.assertEqual(strip_html('<p>Day one</p><p>Beach &amp; sun<br/>Relax</p>'),
                         'Day one\nBeach & sun\nRelax')
        self.assertEqual(strip_html(None), '')

    def test_hotel_category(self):
        self.assertEqual(hotel_category_from_label('4 Star'), 4)
        self.assertEqual(hotel_category_from_label(''), 3)

    def test_export_filename(self):
        self.assertEqual(export_filename('Goa Trip 2025!', date(2025, 5, 1)),
                         'Goa_Trip_2025__2025-05-01.pdf')
        self.assertEqual(export_filename(None, date(2025, 5, 1)), 'itinerary_2025-05-01.pdf')


class MasterAutoCreationTests(unittest.TestCase):

    def test_ensure_destinations_counts_new_rows(self):
        db = FakeConnection()
        db.on("INSERT INTO destinations", ('id',), [(1,)], once=True)
        cur = db.cursor()
        self.assertEqual(ensure_destinations(cur, 'Goa, Manali'), 1)
        self.assertEqual(len(db.statements('ON CONFLICT (name) DO NOTHING')), 2)

    def test_existing_hotel_is_reused(self):
        db = FakeConnection().on('SELECT id FROM hotels', ('id',), [(12,)])
        hotel_id = ensure_hotel_for_event(db.cursor(), {
            'type': 'Manual', 'hotelName': 'Sea View', 'destination': 'Goa'})
        self.assertEqual(hotel_id, 12)
        self.assertEqual(db.statements('INSERT INTO hotels'), [])

    def test_new_hotel_is_created(self):
        db = FakeConnection().on('INSERT INTO hotels', ('id',), [(30,)])
        hotel_id = ensure_hotel_for_event(db.cursor(), {
            'type': 'Manual', 'hotelName': 'Sea View', 'destination': 'Goa', 'category': '5 Star'})
        self.assertEqual(hotel_id, 30)
        params = db.statements('INSERT INTO hotels')[0][1]
        self.assertEqual(params[2], 5)

    def test_master_selected_hotel_is_left_alone(self):
        db = FakeConnection()
        self.assertIsNone(ensure_hotel_for_event(db.cursor(), {
            'type': 'Master', 'hotelName': 'Sea View', 'destination': 'Goa'}))
        self.assertEqual(db.executed, [])

    def test_new_transfer_is_created_with_price(self):
        db = FakeConnection().on('INSERT INTO transfers', ('id',), [(4,)])
        transfer_id = ensure_transfer_for_event(db.cursor(), {
            'type': 'Manual', 'name': 'Airport pickup', 'destination': 'Goa', 'price': '1,200'})
        self.assertEqual(transfer_id, 4)
        params = db.statements('INSERT INTO transfers')[0][1]
        self.assertEqual(str(params[2]), '1200')


if __name__ == '__main__':
    unittest.main()
