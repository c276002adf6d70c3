"""
PDF rendering smoke tests. Images are never fetched over the network here.
"""
from datetime import date
import unittest
from unittest import mock

import requests

import itinerary_pdf
from itinerary_pdf import ItineraryPdfRenderer, fetch_image, render_itinerary_pdf


def no_images(source, timeout):
    return None


class RenderTests(unittest.TestCase):

    def setUp(self):
        self.itinerary = {
            'id': 1, 'name': 'Goa Escape', 'start_date': date(2025, 5, 1),
            'end_date': date(2025, 5, 2), 'adults': 2, 'children': 1,
            'cover_photo': 'https://img.example/cover.jpg',
            'package_terms': [
                {'type': 'Add tips', 'title': 'Cancellation',
                 'description': '<p>' + 'Non refundable within 7 days. ' * 20 + '</p>'},
            ],
        }
        self.days = [
            {'id': 1, 'day_number': 1, 'date': date(2025, 5, 1), 'location': 'Goa', 'events': [
                {'id': 3, 'title': 'Transportation', 'sort_order': 2, 'event_data': {
                    'name': 'Airport pickup', 'destination': 'Goa',
                    'content': '<p>Meet at\n  arrivals</p>', 'price': '1500'}},
                {'id': 2, 'title': 'Details', 'sort_order': 1, 'event_data': {
                    'description': '<b>Arrive</b> and relax'}},
                {'id': 4, 'title': 'Accommodation', 'sort_order': 3, 'event_data': {
                    'hotelName': 'Sea View', 'roomName': 'Deluxe',
                    'checkin': {'date': '2025-05-01'}, 'checkout': {'date': '2025-05-02'}}},
            ]},
            {'id': 2, 'day_number': 2, 'date': date(2025, 5, 2), 'events': []},
        ]

    def test_renders_pdf_bytes(self):
        pdf = render_itinerary_pdf(self.itinerary, self.days, image_loader=no_images)
        self.assertTrue(pdf.startswith(b'%PDF'))

    def test_looks_up_master_images(self):
        calls = []

        def loader(source, timeout):
            calls.append((source, timeout))
            return None

        render_itinerary_pdf(
            self.itinerary, self.days,
            hotel_images={'sea view': 'https://img.example/hotel.jpg'},
            transfer_images={('airport pickup', 'goa'): 'https://img.example/cab.jpg'},
            image_loader=loader,
        )
        self.assertEqual(calls[0], ('https://img.example/cover.jpg', itinerary_pdf.COVER_TIMEOUT))
        self.assertIn(('https://img.example/hotel.jpg', itinerary_pdf.THUMB_TIMEOUT), calls)
        self.assertIn(('https://img.example/cab.jpg', itinerary_pdf.THUMB_TIMEOUT), calls)

    def test_long_itinerary_breaks_pages(self):
        days = [
            {'day_number': n, 'date': None, 'events': [
                {'title': 'Activity', 'event_data': {'name': f'Tour {n}'}},
                {'title': 'Meal', 'event_data': {'name': 'Dinner', 'price': '400'}},
            ]}
            for n in range(1, 15)
        ]
        renderer = ItineraryPdfRenderer(self.itinerary, days, image_loader=no_images)
        pdf = renderer.render()
        self.assertTrue(pdf.startswith(b'%PDF'))
        self.assertGreater(renderer.pdf.getPageNumber(), 2)

    def test_event_lines_stay_above_bottom_margin(self):
        renderer = ItineraryPdfRenderer(self.itinerary, self.days, image_loader=no_images)
        drawn = []
        draw = renderer._text

        def record(x, y, text, *args, **kwargs):
            drawn.append(y)
            draw(x, y, text, *args, **kwargs)

        renderer._text = record
        renderer.y = itinerary_pdf.PAGE_HEIGHT - 30
        renderer._event(self.days[0]['events'][2])
        self.assertEqual(renderer.pdf.getPageNumber(), 2)
        self.assertTrue(all(y <= itinerary_pdf.PAGE_HEIGHT - 20 for y in drawn))

    def test_non_string_photo_is_ignored(self):
        renderer = ItineraryPdfRenderer(self.itinerary, self.days, image_loader=fetch_image)
        with mock.patch.object(itinerary_pdf.requests, 'get') as get:
            renderer._event({'title': 'Accommodation', 'event_data': {
                'hotelName': 'Sea View', 'hotelPhoto': {'url': 'https://img.example/h.jpg'}}})
        get.assert_not_called()


class FetchImageTests(unittest.TestCase):

    def test_missing_source(self):
        self.assertIsNone(fetch_image(None, 3))

    def test_non_string_source(self):
        self.assertIsNone(fetch_image(123, 3))
        self.assertIsNone(fetch_image(['https://img.example/a.jpg'], 3))

    def test_network_error_is_not_fatal(self):
        with mock.patch.object(itinerary_pdf.requests, 'get',
                               side_effect=requests.ConnectionError('unreachable')):
            self.assertIsNone(fetch_image('https://img.example/cover.jpg', 3))

    def test_broken_data_url(self):
        self.assertIsNone(fetch_image('data:image/png;base64,not-an-image', 3))


if __name__ == '__main__':
    unittest.main()
