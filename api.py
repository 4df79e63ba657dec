"""
JSON API

Mirrors the page actions for the mobile client. The mobile client has no
session cookie and names its user in the X-User-Email header instead.
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from auth import authenticate, header_user, register_user, session_user
from errors import EatRealError, NotAuthenticated, ValidationFailed
from models import User, db
from reviews import (create_review, delete_review, get_review, image_from_upload, list_reviews,
                     recent_reviews, update_review)

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')

# camelCase keys sent by the mobile client
FIELD_ALIASES = {
    'restaurantId': 'restaurant_id',
    'visitedAt': 'visited_at',
    'firstName': 'first_name',
    'lastName': 'last_name',
    'restaurantName': 'name',
}
RESTAURANT_FIELDS = ('name', 'latitude', 'longitude', 'address')


@api_bp.errorhandler(EatRealError)
def handle_domain_error(e):
    db.session.rollback()
    return jsonify({'success': False, 'error': e.message}), e.status_code


@api_bp.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({'success': False, 'error': e.description}), e.code


@api_bp.errorhandler(Exception)
def handle_unexpected_error(e):
    db.session.rollback()
    logger.exception('Unhandled API error on %s %s', request.method, request.path)
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


# === Helpers ===

def json_body():
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationFailed('Invalid input data')
    return body


def request_payload():
    """Request body as a plain dict, from JSON or from form fields and uploads."""
    if request.is_json:
        data = json_body()
    else:
        form = request.form
        data = form.to_dict()
        if 'companions' in form:
            data['companions'] = form.getlist('companions')
        images = [{'url': url} for url in form.getlist('image_urls') if url.strip()]
        images += [img for img in (image_from_upload(f) for f in request.files.getlist('images') if f.filename) if img]
        if images or 'image_urls' in form:
            data['images'] = images
        data.pop('image_urls', None)

    return {FIELD_ALIASES.get(key, key): value for key, value in data.items()}


def restaurant_payload(data):
    nested = data.pop('restaurant', None)
    if isinstance(nested, dict):
        return nested
    fields = {key: data.pop(key) for key in RESTAURANT_FIELDS if key in data}
    return fields or None


def require_header_user():
    email = request.headers.get('X-User-Email')
    if not email:
        raise NotAuthenticated('User email required')
    user = header_user()
    if user is None:
        raise NotAuthenticated('User not found')
    return user


def require_api_user():
    """Session user first, then the X-User-Email header."""
    return session_user() or require_header_user()


def _int_arg(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f'Invalid {label}')


# === Reviews ===

@api_bp.route('/reviews', methods=['GET'])
def reviews_index():
    review_id = request.args.get('id')
    restaurant_id = request.args.get('restaurantId')

    if review_id:
        return jsonify(get_review(_int_arg(review_id, 'review ID')).to_dict())
    if restaurant_id:
        visits = list_reviews(restaurant_ids=[_int_arg(restaurant_id, 'restaurant ID')])
        return jsonify([v.to_dict() for v in visits])

    user = require_api_user()
    return jsonify([v.to_dict() for v in list_reviews(user=user)])


@api_bp.route('/reviews', methods=['POST'])
def reviews_create():
    user = require_api_user()
    data = request_payload()
    restaurant_data = restaurant_payload(data)
    visit = create_review(user, data, restaurant_data)
    return jsonify({'success': True, 'visitId': visit.id, 'review': visit.to_dict()}), 201


@api_bp.route('/reviews/<int:review_id>', methods=['PUT'])
def reviews_update(review_id):
    user = require_header_user()
    visit = get_review(review_id)
    # Fields left out keep their stored values
    data = {'rating': visit.rating, 'review': visit.review, 'price': visit.price}
    data.update(request_payload())
    visit = update_review(user, review_id, data)
    return jsonify({'success': True, 'review': visit.to_dict()})


@api_bp.route('/reviews/<int:review_id>', methods=['DELETE'])
def reviews_delete(review_id):
    user = require_header_user()
    delete_review(user, review_id)
    return jsonify({'success': True, 'message': 'Review deleted successfully'})


@api_bp.route('/reviews/delete', methods=['POST'])
def reviews_delete_by_body():
    user = session_user()
    if user is None:
        raise NotAuthenticated('User not authenticated')

    body = json_body()
    review_id = _int_arg(body.get('reviewId'), 'review ID')
    delete_review(user, review_id)
    return jsonify({'success': True, 'message': 'Review deleted successfully'})


@api_bp.route('/reviews/recent')
def reviews_recent():
    return jsonify([v.to_dict() for v in recent_reviews()])


@api_bp.route('/reviews/user')
def reviews_for_user():
    user = require_header_user()
    return jsonify([v.to_dict() for v in list_reviews(user=user)])


# === Auth ===

@api_bp.route('/auth/register', methods=['POST'])
def api_register():
    user = register_user(request_payload())
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@api_bp.route('/auth/login', methods=['POST'])
def api_login():
    user = authenticate(request_payload())
    return jsonify({'success': True, 'user': user.to_dict()})


@api_bp.route('/auth/logout', methods=['POST'])
def api_logout():
    # Mobile sessions live on the device, nothing to clear here
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@api_bp.route('/auth/user')
def api_user():
    user = session_user() or header_user()
    if user is None:
        return jsonify({'success': False, 'error': 'User not found'}), 404
    return jsonify(user.to_dict())


# === Users ===

@api_bp.route('/users')
def users_index():
    return jsonify([u.to_dict() for u in User.query.order_by(User.id).all()])
