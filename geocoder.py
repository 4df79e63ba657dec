import logging

from flask import current_app
from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.geocoders import Nominatim

logger = logging.getLogger(__name__)


def get_geolocator():
    cfg = current_app.config
    return Nominatim(user_agent=cfg['NOMINATIM_USER_AGENT'], timeout=cfg['NOMINATIM_TIMEOUT'])


def place_from_location(location):
    """Flatten a geopy Location into the fields the review form needs."""
    raw = location.raw or {}
    address = location.address or ''
    name = raw.get('name') or address.split(',')[0].strip()
    return {
        'name': name,
        'latitude': location.latitude,
        'longitude': location.longitude,
        'address': address,
        'category': raw.get('type') or raw.get('class'),
    }


def _call_with_retry(func, *args, **kwargs):
    """Calls the geocoder, trying once more with a longer timeout if it times out."""
    try:
        return func(*args, **kwargs)
    except GeocoderTimedOut:
        logger.warning('Nominatim timed out, trying again...')
        try:
            return func(*args, timeout=current_app.config['NOMINATIM_TIMEOUT'] + 5, **kwargs)
        except (GeocoderTimedOut, GeocoderServiceError) as e:
            logger.error('Nominatim unavailable: %s', e)
    except GeocoderServiceError as e:
        logger.error('Nominatim unavailable: %s', e)
    return None


def search_places(query):
    """Free-text search. Returns a (possibly empty) list of places."""
    query = (query or '').strip()
    if not query:
        return []

    geolocator = get_geolocator()
    locations = _call_with_retry(
        geolocator.geocode, query,
        exactly_one=False, limit=current_app.config['NOMINATIM_RESULT_LIMIT'],
    )
    return [place_from_location(loc) for loc in locations or []]


def reverse_lookup(latitude, longitude):
    """Name the place at a clicked map point. Falls back to bare coordinates."""
    geolocator = get_geolocator()
    location = _call_with_retry(geolocator.reverse, (latitude, longitude), exactly_one=True)
    if location is None:
        return {
            'name': '',
            'latitude': latitude,
            'longitude': longitude,
            'address': '',
            'category': None,
        }
    return place_from_location(location)
