import datetime
import io
import re

import views
from models import Image, Visit, db


def test_index_lists_recent_reviews(client, visit):
    resp = client.get('/')
    assert resp.status_code == 200
    page = resp.get_data(as_text=True)
    assert 'Chez Léon' in page
    assert 'Great mussels' in page
    assert 'Alice Martin' in page


def test_index_empty(client):
    assert 'No reviews yet.' in client.get('/').get_data(as_text=True)


def test_map_search_renders_places(client, monkeypatch):
    searched = []

    def fake_search(query):
        searched.append(query)
        return [{'name': 'Noordzee', 'latitude': 50.8494, 'longitude': 4.3487,
                 'address': 'Rue Sainte-Catherine 45', 'category': 'restaurant'}]

    monkeypatch.setattr(views, 'search_places', fake_search)

    resp = client.get('/map?q=noordzee')

    assert resp.status_code == 200
    assert searched == ['noordzee']
    assert 'Rue Sainte-Catherine 45' in resp.get_data(as_text=True)


def test_map_search_without_results(client, monkeypatch):
    monkeypatch.setattr(views, 'search_places', lambda query: [])
    assert 'No places found' in client.get('/map?q=zzz').get_data(as_text=True)


def test_map_click_reverse_lookup(client, monkeypatch):
    monkeypatch.setattr(views, 'reverse_lookup', lambda lat, lon: {
        'name': 'Fin de Siècle', 'latitude': lat, 'longitude': lon, 'address': 'Rue des Chartreux 9', 'category': None,
    })
    page = client.get('/map?lat=50.849&lon=4.348').get_data(as_text=True)
    assert 'Fin de Siècle' in page


def test_restaurant_page_shows_average(client, visit):
    resp = client.get('/reviews?name=Chez&lat=50.8476&lon=4.3542')
    assert resp.status_code == 200
    page = resp.get_data(as_text=True)
    assert '4.0 / 5 from 1 review' in page
    assert 'Great mussels' in page


def test_restaurant_page_without_coordinates(client):
    resp = client.get('/reviews?name=Chez')
    assert resp.status_code == 302
    assert '/map' in resp.headers['Location']


def test_new_review_form_prefilled(client, alice, login):
    login(alice)
    page = client.get('/new?name=Noordzee&lat=50.8494&lon=4.3487').get_data(as_text=True)
    assert 'value="Noordzee"' in page
    assert 'value="50.8494"' in page


def test_new_review_creates_visit(client, alice, login):
    login(alice)
    resp = client.post('/new', data={
        'restaurant_name': 'Noordzee',
        'latitude': '50.8494',
        'longitude': '4.3487',
        'address': 'Rue Sainte-Catherine 45',
        'rating': '5',
        'review': 'Grey shrimp croquettes',
        'price': '€€',
        'image_urls': 'https://img.example.com/croquettes.jpg',
        'images': (io.BytesIO(b'\x89PNG fake'), 'plate.png', 'image/png'),
    }, content_type='multipart/form-data')

    assert resp.status_code == 302
    visit = Visit.query.one()
    assert visit.user_id == alice.id
    assert visit.restaurant.name == 'Noordzee'
    urls = [image.url for image in visit.images]
    assert urls[0] == 'https://img.example.com/croquettes.jpg'
    assert urls[1].startswith('data:image/png;base64,')


def test_new_review_missing_rating(client, alice, login):
    login(alice)
    resp = client.post('/new', data={
        'restaurant_name': 'Noordzee',
        'latitude': '50.8494',
        'longitude': '4.3487',
        'review': 'Forgot the stars',
    })
    assert resp.status_code == 400
    page = resp.get_data(as_text=True)
    assert 'rating' in page
    assert 'Forgot the stars' in page
    assert Visit.query.count() == 0


def test_edit_review_form_shows_stored_values(client, alice, visit, login):
    login(alice)
    page = client.get(f'/edit-review/{visit.id}').get_data(as_text=True)
    assert 'Great mussels' in page
    assert 'https://img.example.com/1.jpg' in page


def test_edit_review_by_owner(client, alice, visit, login):
    login(alice)
    kept = visit.images[1].id
    resp = client.post(f'/edit-review/{visit.id}', data={
        'rating': '2',
        'review': 'Went downhill',
        'price': '€€€',
        'keep_images': [str(kept)],
        'image_urls': ['https://img.example.com/3.jpg'],
    })
    assert resp.status_code == 302
    assert visit.rating == 2
    assert visit.price == '€€€'
    assert [(image.id, image.url) for image in visit.images][0] == (kept, 'https://img.example.com/2.jpg')
    assert [image.url for image in visit.images][1:] == ['https://img.example.com/3.jpg']
    assert Image.query.count() == 2


def test_edit_form_saved_unchanged_keeps_captions_and_time(client, alice, visit, login):
    visit.visited_at = datetime.datetime(2024, 6, 1, 19, 30)
    db.session.commit()
    login(alice)

    page = client.get(f'/edit-review/{visit.id}').get_data(as_text=True)
    form = {
        'rating': '4',
        'review': 'Great mussels',
        'price': '€€',
        'visited_at': re.search(r'name="visited_at" value="([^"]*)"', page).group(1),
        'keep_images': re.findall(r'name="keep_images" value="(\d+)"', page),
        'image_urls': '',
    }
    assert form['visited_at'] == '2024-06-01'
    assert len(form['keep_images']) == 2

    assert client.post(f'/edit-review/{visit.id}', data=form).status_code == 302

    assert [image.caption for image in visit.images] == ['Mussels', None]
    assert Image.query.count() == 2
    assert (visit.visited_at.hour, visit.visited_at.minute) == (19, 30)


def test_edit_form_new_day_updates_visit_date(client, alice, visit, login):
    login(alice)
    client.post(f'/edit-review/{visit.id}', data={'rating': '4', 'visited_at': '2023-12-24'})
    assert visit.visited_at.date() == datetime.date(2023, 12, 24)


def test_edit_review_by_non_owner_redirects(client, bob, visit, login):
    login(bob)
    resp = client.get(f'/edit-review/{visit.id}')
    assert resp.status_code == 302
    assert '/profile' in resp.headers['Location']


def test_edit_missing_review(client, alice, login):
    login(alice)
    assert client.get('/edit-review/999').status_code == 404


def test_delete_review_page(client, alice, visit, login):
    login(alice)
    resp = client.post(f'/delete-review/{visit.id}', data={'next': '/'})
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/')
    assert Visit.query.count() == 0
    assert Image.query.count() == 0


def test_delete_review_page_non_owner(client, bob, visit, login):
    login(bob)
    client.post(f'/delete-review/{visit.id}')
    assert Visit.query.count() == 1


def test_profile_shows_stats_and_reviews(client, alice, visit, login):
    login(alice)
    page = client.get('/profile').get_data(as_text=True)
    assert 'Alice Martin' in page
    assert 'Great mussels' in page
    assert '<strong>1</strong><span>Total Reviews</span>' in page
    assert '<strong>4.0</strong><span>Average Rating</span>' in page


def test_add_friend_from_profile(client, alice, bob, login):
    login(alice)
    resp = client.post('/profile/friends', data={'email': 'bob@example.com'}, follow_redirects=True)
    assert 'Bob added to your friends' in resp.get_data(as_text=True)
    assert bob in alice.friends


def test_add_unknown_friend(client, alice, login):
    login(alice)
    resp = client.post('/profile/friends', data={'email': 'ghost@example.com'}, follow_redirects=True)
    assert 'User not found' in resp.get_data(as_text=True)


def test_unknown_page(client):
    resp = client.get('/does-not-exist')
    assert resp.status_code == 404
    assert 'Page not found' in resp.get_data(as_text=True)
