import logging

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from auth import safe_next
from errors import EatRealError, Forbidden, NotFound
from geocoder import reverse_lookup, search_places
from models import db
from reviews import (add_friend, can_modify, companion_choices, create_review, delete_review,
                     friends_of, get_review, image_from_upload, list_reviews, recent_reviews,
                     restaurant_reviews, review_stats, update_review)
from schemas import PRICE_TIERS

logger = logging.getLogger(__name__)

views_bp = Blueprint('views', __name__)

PRICE_LABELS = {
    '€': '€ (Inexpensive)',
    '€€': '€€ (Moderate)',
    '€€€': '€€€ (Expensive)',
    '€€€€': '€€€€ (Very Expensive)',
}


def _float_arg(name):
    try:
        return float(request.args.get(name))
    except (TypeError, ValueError):
        return None


def _ids(form, field):
    return [int(v) for v in form.getlist(field) if v.isdigit()]


def review_form_data(form, files):
    """Collect the review fields and images posted by the new/edit forms."""
    images = [{'url': url} for url in form.getlist('image_urls') if url.strip()]
    for upload in files.getlist('images'):
        if upload and upload.filename:
            image = image_from_upload(upload)
            if image:
                images.append(image)

    data = {
        'restaurant_id': form.get('restaurant_id'),
        'rating': form.get('rating'),
        'review': form.get('review'),
        'price': form.get('price'),
        'visited_at': form.get('visited_at'),
        'images': images,
    }
    # Only replace companions when the form rendered the picker
    if form.get('companions_field'):
        data['companions'] = _ids(form, 'companions')
    return data


def posted_values(form):
    """Field values to show again when a submitted form is rejected."""
    rating = form.get('rating', '')
    return {
        'rating': int(rating) if rating.isdigit() else None,
        'review_text': form.get('review'),
        'price': form.get('price'),
        'visited_at': form.get('visited_at'),
        'selected_companions': _ids(form, 'companions'),
        'image_urls': [url for url in form.getlist('image_urls') if url.strip()],
        'kept_images': _ids(form, 'keep_images'),
    }


def stored_values(visit):
    return {
        'rating': visit.rating,
        'review_text': visit.review,
        'price': visit.price,
        'visited_at': visit.visited_at.strftime('%Y-%m-%d') if visit.visited_at else '',
        'selected_companions': [c.id for c in visit.companions],
        'image_urls': [],
        'kept_images': [image.id for image in visit.images],
    }


def _render_review_form(template, values, status=200, tagged=(), stored_images=(), **context):
    companions = companion_choices(current_user)
    # People already tagged stay visible even when they are not in the picker
    companions += [c for c in tagged if c not in companions]
    return render_template(
        template,
        companions=companions,
        price_tiers=PRICE_TIERS,
        price_labels=PRICE_LABELS,
        stored_images=stored_images,
        **values,
        **context
    ), status


# === ROUTES ===

@views_bp.route('/')
def index():
    return render_template('index.html', reviews=recent_reviews())


@views_bp.route('/map')
def map_view():
    query = request.args.get('q', '').strip()
    lat, lon = _float_arg('lat'), _float_arg('lon')

    places = []
    if query:
        places = search_places(query)
        if not places:
            flash(f'No places found for "{query}"', 'info')
    elif lat is not None and lon is not None:
        places = [reverse_lookup(lat, lon)]

    return render_template('map.html', places=places, query=query)


@views_bp.route('/reviews')
def restaurant_page():
    name = request.args.get('name', '').strip()
    lat, lon = _float_arg('lat'), _float_arg('lon')
    if not name or lat is None or lon is None:
        return redirect(url_for('views.map_view'))

    visits, average = restaurant_reviews(name, lat, lon)
    restaurant = {
        'name': name,
        'latitude': lat,
        'longitude': lon,
        'address': request.args.get('address', ''),
    }
    return render_template('reviews.html', restaurant=restaurant, reviews=visits, average=average)


@views_bp.route('/new', methods=['GET', 'POST'])
@login_required
def new_review():
    if request.method == 'POST':
        form = request.form
        place = {
            'name': form.get('restaurant_name'),
            'latitude': form.get('latitude'),
            'longitude': form.get('longitude'),
            'address': form.get('address'),
        }
        try:
            create_review(current_user, review_form_data(form, request.files), place)
        except EatRealError as e:
            db.session.rollback()
            flash(e.message, 'error')
            return _render_review_form('new.html', posted_values(form), status=e.status_code, place=place)

        flash('Review added', 'success')
        return redirect(url_for('views.index'))

    # Prefilled when coming from the map
    place = {
        'name': request.args.get('name', ''),
        'latitude': request.args.get('lat', ''),
        'longitude': request.args.get('lon', ''),
        'address': request.args.get('address', ''),
    }
    return _render_review_form('new.html', posted_values(request.args), place=place)


@views_bp.route('/edit-review/<int:review_id>', methods=['GET', 'POST'])
@login_required
def edit_review(review_id):
    try:
        visit = get_review(review_id)
    except NotFound:
        abort(404)
    if not can_modify(current_user, visit):
        flash('Unauthorized to edit this review', 'error')
        return redirect(url_for('views.profile'))

    if request.method == 'POST':
        form = request.form
        try:
            data = review_form_data(form, request.files)
            data['keep_images'] = _ids(form, 'keep_images')
            # The form only carries the day; an unchanged day keeps the stored time
            if data['visited_at'] == stored_values(visit)['visited_at']:
                data['visited_at'] = None
            update_review(current_user, review_id, data)
        except EatRealError as e:
            db.session.rollback()
            flash(e.message, 'error')
            return _render_review_form('edit_review.html', posted_values(form), status=e.status_code,
                                       tagged=visit.companions, stored_images=visit.images, visit=visit)

        flash('Review updated', 'success')
        return redirect(url_for('views.profile'))

    return _render_review_form('edit_review.html', stored_values(visit), tagged=visit.companions,
                               stored_images=visit.images, visit=visit)


@views_bp.route('/delete-review/<int:review_id>', methods=['POST'])
@login_required
def remove_review(review_id):
    try:
        delete_review(current_user, review_id)
    except NotFound:
        abort(404)
    except Forbidden as e:
        flash(e.message, 'error')
        return redirect(url_for('views.index'))
    flash('Review deleted', 'success')
    return redirect(safe_next(request.form.get('next')) or url_for('views.profile'))


@views_bp.route('/profile')
@login_required
def profile():
    visits = list_reviews(user=current_user)
    return render_template(
        'profile.html',
        reviews=visits,
        stats=review_stats(visits),
        friends=friends_of(current_user),
    )


@views_bp.route('/profile/friends', methods=['POST'])
@login_required
def add_friend_view():
    try:
        friend = add_friend(current_user, request.form.get('email'))
    except EatRealError as e:
        flash(e.message, 'error')
    else:
        flash(f'{friend.display_name} added to your friends', 'success')
    return redirect(url_for('views.profile'))
