"""
Review service

CRUD for visits (a user's review of a restaurant) together with the
restaurants, companions and images hanging off them.
"""

import base64
import logging

from sqlalchemy import or_, select, union

from errors import Forbidden, NotFound, ValidationFailed
from models import Image, Restaurant, User, Visit, db, friendship, utcnow
from schemas import RestaurantInput, ReviewInput, ReviewUpdate, normalize_email, validate

logger = logging.getLogger(__name__)

# Roughly 100 m around the requested point
COORDINATE_WINDOW = 0.001
RECENT_LIMIT = 10


# === Restaurants ===

def find_restaurants(name, latitude, longitude):
    """Restaurants whose name or address contains `name` inside the coordinate window."""
    return Restaurant.query.filter(
        or_(
            Restaurant.name.icontains(name, autoescape=True),
            Restaurant.address.icontains(name, autoescape=True),
        ),
        Restaurant.latitude.between(latitude - COORDINATE_WINDOW, latitude + COORDINATE_WINDOW),
        Restaurant.longitude.between(longitude - COORDINATE_WINDOW, longitude + COORDINATE_WINDOW),
    ).order_by(Restaurant.id).all()


def resolve_restaurant(data):
    """Reuse a matching restaurant or create one. `data` is a dict or RestaurantInput."""
    if not isinstance(data, RestaurantInput):
        data = validate(RestaurantInput, data)

    matches = find_restaurants(data.name, data.latitude, data.longitude)
    if matches:
        return matches[0]

    restaurant = Restaurant(
        name=data.name,
        latitude=data.latitude,
        longitude=data.longitude,
        address=data.address,
    )
    db.session.add(restaurant)
    db.session.flush()
    logger.info('Created restaurant %s (%s, %s)', restaurant.name, restaurant.latitude, restaurant.longitude)
    return restaurant


def get_restaurant(restaurant_id):
    restaurant = db.session.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFound('Restaurant not found')
    return restaurant


# === Queries ===

def _ordered(query):
    return query.order_by(Visit.visited_at.desc(), Visit.id.desc())


def list_reviews(user=None, restaurant_ids=None, limit=None):
    query = Visit.query
    if user is not None:
        query = query.filter(Visit.user_id == user.id)
    if restaurant_ids is not None:
        query = query.filter(Visit.restaurant_id.in_(restaurant_ids))
    query = _ordered(query)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def recent_reviews(limit=RECENT_LIMIT):
    return list_reviews(limit=limit)


def restaurant_reviews(name, latitude, longitude):
    """Reviews of every restaurant matching the name/location, with their average rating."""
    restaurants = find_restaurants(name, latitude, longitude)
    if not restaurants:
        return [], 0
    visits = list_reviews(restaurant_ids=[r.id for r in restaurants])
    return visits, average_rating(visits)


def get_review(visit_id):
    visit = db.session.get(Visit, visit_id)
    if visit is None:
        raise NotFound('Review not found')
    return visit


def average_rating(visits):
    if not visits:
        return 0
    return round(sum(v.rating or 0 for v in visits) / len(visits), 1)


def review_stats(visits):
    return {
        'total_reviews': len(visits),
        'average_rating': average_rating(visits),
        'unique_restaurants': len({v.restaurant_id for v in visits}),
    }


# === Companions ===

def friends_of(user):
    """Users linked to `user` through the friends relation, in either direction."""
    linked = union(
        select(friendship.c.friend_id).where(friendship.c.user_id == user.id),
        select(friendship.c.user_id).where(friendship.c.friend_id == user.id),
    )
    return User.query.filter(User.id.in_(linked)).order_by(User.email).all()


def add_friend(user, email):
    friend = User.query.filter_by(email=normalize_email(email or '')).first()
    if friend is None:
        raise NotFound('User not found')
    if friend.id == user.id:
        raise ValidationFailed('You cannot add yourself as a friend')
    if friend not in friends_of(user):
        user.friends.append(friend)
        db.session.commit()
    return friend


def companion_choices(user):
    """Admins may tag anyone, everybody else only their friends."""
    if user.admin:
        return User.query.filter(User.id != user.id).order_by(User.email).all()
    return friends_of(user)


def _load_companions(author, ids):
    ids = {i for i in ids if i != author.id}
    if not ids:
        return []
    companions = User.query.filter(User.id.in_(ids)).all()
    missing = ids - {c.id for c in companions}
    if missing:
        raise ValidationFailed(f'Unknown companion id(s): {", ".join(map(str, sorted(missing)))}')
    return companions


# === Images ===

def image_from_upload(file_storage, caption=None):
    """Turn an uploaded photo into an image entry with an inline data URL."""
    content = file_storage.read()
    if not content:
        return None
    mimetype = file_storage.mimetype or 'application/octet-stream'
    if not mimetype.startswith('image/'):
        raise ValidationFailed(f'{file_storage.filename} is not an image')
    encoded = base64.b64encode(content).decode('ascii')
    return {'url': f'data:{mimetype};base64,{encoded}', 'caption': caption}


def _replace_images(visit, images, keep=()):
    """Drop the visit's images except the ids in `keep`, then add `images`."""
    keep = set(keep)
    for image in list(visit.images):
        if image.id not in keep:
            db.session.delete(image)
    db.session.flush()
    db.session.expire(visit, ['images'])
    for image in images:
        db.session.add(Image(url=image.url, caption=image.caption, visit_id=visit.id))


# === Mutations ===

def can_modify(user, visit):
    return user is not None and (visit.user_id == user.id or user.admin)


def create_review(user, data, restaurant_data=None):
    """
    Create a visit for `user`.
    The restaurant is taken from data['restaurant_id'] when present, otherwise
    resolved from `restaurant_data` (name, latitude, longitude, address).
    """
    payload = validate(ReviewInput, data)
    companions = _load_companions(user, payload.companions)

    if payload.restaurant_id is not None:
        restaurant = get_restaurant(payload.restaurant_id)
    elif restaurant_data is not None:
        restaurant = resolve_restaurant(restaurant_data)
    else:
        raise ValidationFailed('A restaurant is required')

    visit = Visit(
        user_id=user.id,
        restaurant_id=restaurant.id,
        rating=payload.rating,
        review=payload.review,
        price=payload.price,
        visited_at=payload.visited_at or utcnow(),
    )
    visit.companions = companions
    db.session.add(visit)
    db.session.flush()

    for image in payload.images:
        db.session.add(Image(url=image.url, caption=image.caption, visit_id=visit.id))

    db.session.commit()
    logger.info('User %s reviewed restaurant %s (visit %s)', user.id, restaurant.id, visit.id)
    return visit


def update_review(user, visit_id, data):
    visit = get_review(visit_id)
    if not can_modify(user, visit):
        raise Forbidden('Unauthorized to edit this review')

    payload = validate(ReviewUpdate, data)

    if payload.restaurant_id is not None and payload.restaurant_id != visit.restaurant_id:
        visit.restaurant_id = get_restaurant(payload.restaurant_id).id
    visit.rating = payload.rating
    visit.review = payload.review
    visit.price = payload.price
    if payload.visited_at is not None:
        visit.visited_at = payload.visited_at

    if payload.companions is not None:
        visit.companions = _load_companions(visit.user, payload.companions)
    if payload.images is not None or payload.keep_images is not None:
        _replace_images(visit, payload.images or [], keep=payload.keep_images or ())

    db.session.commit()
    logger.info('User %s updated visit %s', user.id, visit.id)
    return visit


def delete_review(user, visit_id):
    """Delete a visit and its images. Only the owner or an admin may do this."""
    visit = get_review(visit_id)
    if not can_modify(user, visit):
        logger.warning('Unauthorized delete attempt on visit %s by user %s', visit.id, user.id)
        raise Forbidden('You can only delete your own reviews')

    # Images go first, the schema has no ON DELETE CASCADE
    _replace_images(visit, [])
    db.session.delete(visit)
    db.session.commit()
    logger.info('User %s deleted visit %s', user.id, visit_id)
