"""
PDF export of an itinerary.

Layout is A4 portrait in millimetres measured from the top of the page:
cover header, day-by-day plan with per-event details, then package terms.
Images are fetched with requests; a missing or broken image is logged and
skipped, never fatal.
"""

from io import BytesIO
from typing import Dict, List, Any, Optional, Tuple
import base64
import binascii
import logging

import requests
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

import config
from itinerary_engine import EVENT_ICONS, format_day_date, parse_date, sort_events, strip_html

logger = logging.getLogger(__name__)

PAGE_WIDTH = A4[0] / mm
PAGE_HEIGHT = A4[1] / mm

COVER_HEIGHT = 60
BAND_HEIGHT = 40
THUMB_SIZE = 30

COVER_TIMEOUT = 10
THUMB_TIMEOUT = 3

BLUE = (59, 130, 246)
LIGHT_GREY = (240, 240, 240)
MID_GREY = (128, 128, 128)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)

NOT_SPECIFIED = 'Not specified'


def fetch_image(source: Optional[str], timeout: int) -> Optional[ImageReader]:
    """ImageReader for an http(s) URL or base64 data URL, None when unavailable."""
    if not source or not isinstance(source, str):
        return None
    try:
        if source.startswith('data:'):
            payload = source.split(',', 1)[1]
            raw = base64.b64decode(payload)
        else:
            resp = requests.get(source, timeout=timeout)
            resp.raise_for_status()
            raw = resp.content
        image = ImageReader(BytesIO(raw))
        image.getSize()
        return image
    except (requests.RequestException, IndexError, binascii.Error, OSError, ValueError) as e:
        logger.warning(f"Image not loaded ({source[:60]}): {e}")
        return None


def _date_range(itinerary) -> str:
    start = parse_date(itinerary.get('start_date'))
    end = parse_date(itinerary.get('end_date'))
    if not start or not end:
        return ''
    return f"{start.strftime('%d/%m/%Y')} to {end.strftime('%d/%m/%Y')}"


def _or_default(value, default=NOT_SPECIFIED) -> str:
    if value is None or value == '':
        return default
    return str(value)


def _price(value) -> Optional[str]:
    if value in (None, '', 0, '0'):
        return None
    try:
        return f"{float(str(value).replace(',', '')):,.0f}"
    except ValueError:
        return str(value)


class ItineraryPdfRenderer:
    """
    Renders one itinerary.

    Args:
        itinerary: itinerary row
        days: day rows, each with an 'events' list of event rows
        hotel_images: hotel name (lower case) -> icon_url
        transfer_images: (query_name, destination) lower case -> photo_url
        image_loader: callable(source, timeout) -> ImageReader or None
    """

    def __init__(
        self,
        itinerary: Dict[str, Any],
        days: List[Dict[str, Any]],
        hotel_images: Optional[Dict[str, str]] = None,
        transfer_images: Optional[Dict[Tuple[str, str], str]] = None,
        image_loader=fetch_image
    ):
        self.itinerary = itinerary
        self.days = days
        self.hotel_images = hotel_images or {}
        self.transfer_images = transfer_images or {}
        self.image_loader = image_loader
        self.buffer = BytesIO()
        self.pdf = canvas.Canvas(self.buffer, pagesize=A4)
        self.pdf.setTitle(itinerary.get('name') or 'Itinerary')
        self.y = 20

    # -------------------------------------------------
    # DRAWING PRIMITIVES (top-left origin, mm)
    # -------------------------------------------------

    def _text(self, x, y, text, size=10, font='Helvetica', color=BLACK):
        self.pdf.setFont(font, size)
        self.pdf.setFillColorRGB(*(c / 255 for c in color))
        self.pdf.drawString(x * mm, (PAGE_HEIGHT - y) * mm, text)

    def _shadowed(self, x, y, text, size, font):
        self._text(x + 1, y + 1, text, size, font, BLACK)
        self._text(x, y, text, size, font, WHITE)

    def _rect(self, x, y, width, height, color):
        self.pdf.setFillColorRGB(*(c / 255 for c in color))
        self.pdf.rect(x * mm, (PAGE_HEIGHT - y - height) * mm, width * mm, height * mm,
                      stroke=0, fill=1)

    def _image(self, image, x, y, width, height):
        self.pdf.drawImage(image, x * mm, (PAGE_HEIGHT - y - height) * mm,
                           width * mm, height * mm, mask='auto')

    def _wrapped(self, x, text, width, size=10):
        lines = simpleSplit(text, 'Helvetica', size, width * mm)
        for line in lines:
            self._page_break(30)
            self._text(x, self.y, line, size)
            self.y += 4
        return len(lines)

    def _page_break(self, margin):
        if self.y > PAGE_HEIGHT - margin:
            self.pdf.showPage()
            self.y = 20

    # -------------------------------------------------
    # SECTIONS
    # -------------------------------------------------

    def render(self) -> bytes:
        self._header()
        self._days()
        self._package_terms()
        self.pdf.showPage()
        self.pdf.save()
        return self.buffer.getvalue()

    def _header(self):
        name = self.itinerary.get('name') or 'Itinerary Details'
        cover = self.image_loader(self.itinerary.get('cover_photo'), COVER_TIMEOUT)

        if cover is not None:
            self._image(cover, 0, 0, PAGE_WIDTH, COVER_HEIGHT)
            self._shadowed(15, 25, name, 24, 'Helvetica-Bold')
            self._shadowed(15, 35, _date_range(self.itinerary), 12, 'Helvetica')
            adults = self.itinerary.get('adults') or 0
            children = self.itinerary.get('children') or 0
            self._shadowed(15, 42, f"Adults: {adults} | Children: {children}", 12, 'Helvetica')
            self._shadowed(PAGE_WIDTH - 50, 25, config.BRAND_NAME, 16, 'Helvetica-Bold')
            self._shadowed(PAGE_WIDTH - 50, 32, config.BRAND_TAGLINE, 8, 'Helvetica')
            self.y = COVER_HEIGHT + 10
        else:
            self._rect(0, 0, PAGE_WIDTH, BAND_HEIGHT, BLUE)
            self._text(15, 25, name, 24, 'Helvetica-Bold', WHITE)
            self._text(15, 35, _date_range(self.itinerary), 12, 'Helvetica', WHITE)
            self.y = BAND_HEIGHT + 10

        self._text(15, self.y, 'Day-by-Day Itinerary', 18, 'Helvetica-Bold')
        self.y += 15

    def _days(self):
        for day in self.days:
            self._page_break(50)

            self._rect(10, self.y - 5, PAGE_WIDTH - 20, 12, LIGHT_GREY)
            self._text(15, self.y + 2, f"Day {day.get('day_number')}", 14, 'Helvetica-Bold')
            self._text(50, self.y + 2, format_day_date(day.get('date')), 10)
            if day.get('location'):
                self._text(100, self.y + 2, day['location'], 10)
            self.y += 20

            events = sort_events(day.get('events') or [])
            for event in events:
                self._page_break(30)
                self._event(event)
                self.y += 10

            if not events:
                self._text(20, self.y, 'No events scheduled for this day.', 10,
                           'Helvetica-Oblique', MID_GREY)
                self.y += 8

            self.y += 10

    def _event(self, event):
        title = event.get('title') or ''
        data = event.get('event_data') or {}
        self._text(15, self.y, f"{EVENT_ICONS.get(title, '[EVENT]')} {title}", 12, 'Helvetica-Bold')
        self.y += 8

        if title == 'Accommodation':
            self._lines([
                f"Hotel: {_or_default(data.get('hotelName'))}",
                f"Room Type: {_or_default(data.get('roomName'))}",
                f"Check-in: {_or_default((data.get('checkin') or {}).get('date'))}",
                f"Check-out: {_or_default((data.get('checkout') or {}).get('date'))}",
                f"Meal Plan: {_or_default(data.get('mealPlan'))}",
            ])
            icon = self.hotel_images.get((data.get('hotelName') or '').strip().lower())
            self._thumbnail(icon or data.get('hotelPhoto'))

        elif title == 'Transportation':
            lines = [f"Transfer: {_or_default(data.get('name'))}"]
            if data.get('content'):
                lines.append(f"Details: {' '.join(strip_html(data['content']).split())}")
            lines.append(f"Type: {data.get('transferType') or 'Private'}")
            lines.append(f"Time: {data.get('startTime') or ''} TO {data.get('endTime') or ''}")
            lines.extend(self._price_line(data))
            self._lines(lines)
            key = ((data.get('name') or '').strip().lower(),
                   (data.get('destination') or '').strip().lower())
            self._thumbnail(self.transfer_images.get(key) or data.get('transferPhoto'))

        elif title == 'Activity':
            self._lines([
                f"Activity: {_or_default(data.get('name'))}",
                f"Time: {data.get('startTime') or ''} TO {data.get('endTime') or ''}",
            ] + self._price_line(data))

        elif title == 'Meal':
            self._lines([
                f"Meal: {_or_default(data.get('name'))}",
                f"Type: {_or_default(data.get('mealType'))}",
            ] + self._price_line(data))

        elif title == 'Flight':
            self._lines([
                f"Flight: {_or_default(data.get('name'))}",
                f"Flight No: {_or_default(data.get('flightNo'))}",
                f"From: {_or_default(data.get('fromDestination'))}",
                f"To: {_or_default(data.get('toDestination'))}",
            ] + self._price_line(data))

        elif title == 'Leisure':
            self._lines([f"{data.get('name') or 'Day at Leisure'}"])

        elif title == 'Details':
            description = strip_html(data.get('description') or event.get('description'))
            if description:
                self._wrapped(20, description, PAGE_WIDTH - 40)

    def _lines(self, lines):
        for line in lines:
            self._page_break(30)
            self._text(20, self.y, line, 10)
            self.y += 6

    @staticmethod
    def _price_line(data) -> List[str]:
        price = _price(data.get('price'))
        return [f"Price: Rs. {price} total"] if price else []

    def _thumbnail(self, source):
        image = self.image_loader(source, THUMB_TIMEOUT) if source else None
        if image is not None:
            self._image(image, PAGE_WIDTH - 40, self.y - THUMB_SIZE, THUMB_SIZE, THUMB_SIZE)

    def _package_terms(self):
        terms = self.itinerary.get('package_terms') or []
        if not terms:
            return

        self._page_break(50)
        self._text(15, self.y, 'Package Terms', 18, 'Helvetica-Bold')
        self.y += 15

        for term in terms:
            self._page_break(30)
            self._text(15, self.y, term.get('title') or '', 12, 'Helvetica-Bold')
            self.y += 8
            description = strip_html(term.get('description'))
            if description:
                self._wrapped(20, description, PAGE_WIDTH - 30)
            self.y += 10


def render_itinerary_pdf(itinerary, days, hotel_images=None, transfer_images=None,
                         image_loader=fetch_image) -> bytes:
    return ItineraryPdfRenderer(
        itinerary, days, hotel_images, transfer_images, image_loader
    ).render()
