import datetime

import pytz
from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

# Database object, bound to the app in create_app()
db = SQLAlchemy()


def utcnow():
    return datetime.datetime.now(pytz.utc)


def _iso(value):
    return value.isoformat() if value else None


friendship = db.Table(
    'friendship',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('friend_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
)

visit_companion = db.Table(
    'visit_companion',
    db.Column('visit_id', db.Integer, db.ForeignKey('visit.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
)


class User(UserMixin, db.Model):
    """
    Registered people. OAuth-only accounts have no password hash.
    """
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(128), nullable=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    visits = db.relationship('Visit', backref='user', lazy=True, foreign_keys='Visit.user_id')
    friends = db.relationship(
        'User', secondary=friendship,
        primaryjoin=(friendship.c.user_id == id),
        secondaryjoin=(friendship.c.friend_id == id),
        backref=db.backref('friend_of', lazy=True),
        lazy=True,
    )

    def get_id(self):
        # Flask-Login keeps this in the session cookie
        return self.email

    @property
    def display_name(self):
        if self.first_name and self.last_name:
            return f'{self.first_name} {self.last_name}'
        return self.first_name or self.email

    def to_summary(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
        }

    def to_dict(self):
        data = self.to_summary()
        data.update({
            'admin': self.admin,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        })
        return data

    def __repr__(self):
        return f'<User {self.email}>'


class Restaurant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    address = db.Column(db.String(500), nullable=True)

    visits = db.relationship('Visit', backref='restaurant', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'address': self.address,
        }

    def __repr__(self):
        return f'<Restaurant {self.name}>'


class Visit(db.Model):
    """
    A user's review of one restaurant visit.
    Images are removed by the review service before the visit itself.
    """
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurant.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    review = db.Column(db.Text, nullable=True)
    price = db.Column(db.String(10), nullable=True)
    visited_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint('rating >= 1 AND rating <= 5', name='visit_rating_range'),
    )

    images = db.relationship('Image', backref='visit', lazy=True, order_by='Image.id')
    companions = db.relationship('User', secondary=visit_companion, lazy=True,
                                 backref=db.backref('companion_visits', lazy=True))

    def to_dict(self, include_user=True):
        data = {
            'id': self.id,
            'userId': self.user_id,
            'restaurantId': self.restaurant_id,
            'rating': self.rating,
            'review': self.review,
            'price': self.price,
            'visitedAt': _iso(self.visited_at),
            'restaurant': self.restaurant.to_dict(),
            'images': [image.to_dict() for image in self.images],
            'companions': [c.to_summary() for c in self.companions],
        }
        if include_user:
            data['user'] = self.user.to_summary()
        return data

    def __repr__(self):
        return f'<Visit {self.id} rating={self.rating}>'


class Image(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.Text, nullable=False)
    caption = db.Column(db.String(255), nullable=True)
    visit_id = db.Column(db.Integer, db.ForeignKey('visit.id'), nullable=False)

    def to_dict(self):
        return {'id': self.id, 'url': self.url, 'caption': self.caption, 'visitId': self.visit_id}
