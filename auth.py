import logging

import bcrypt
from flask import Blueprint, redirect, render_template, request, session, url_for
from flask_login import LoginManager, current_user, login_user, logout_user

from errors import Conflict, EatRealError, NotAuthenticated, ValidationFailed
from models import User, db
from schemas import LoginInput, RegisterInput, normalize_email, validate

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


# === Passwords ===

def hash_password(password):
    raw = password.encode('utf-8')
    if len(raw) > BCRYPT_MAX_BYTES:
        raise ValidationFailed('Password is too long')
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode('utf-8')


def verify_password(password, hashed):
    raw = password.encode('utf-8')
    if not hashed or len(raw) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(raw, hashed.encode('utf-8'))


# === Users ===

def get_user_by_email(email):
    if not email:
        return None
    return User.query.filter_by(email=email).first()


def register_user(data):
    """Validate `data`, create a local account and return it."""
    payload = validate(RegisterInput, data)

    if get_user_by_email(payload.email):
        raise Conflict('User already exists.')

    user = User(
        email=payload.email,
        password=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    db.session.add(user)
    db.session.commit()
    logger.info('Registered user %s', user.email)
    return user


def authenticate(data):
    """Return the user matching the posted credentials or raise NotAuthenticated."""
    payload = validate(LoginInput, data)

    user = get_user_by_email(payload.email)
    if user is None:
        logger.info('Login attempt for unknown email %s', payload.email)
        raise NotAuthenticated('Invalid credentials.')
    if not user.password:
        raise NotAuthenticated('Invalid login method. Please use OAuth.')
    if not verify_password(payload.password, user.password):
        logger.info('Wrong password for %s', payload.email)
        raise NotAuthenticated('Invalid credentials.')
    return user


# === Session ===

login_manager = LoginManager()
login_manager.login_view = 'auth.login'
login_manager.login_message_category = 'info'


@login_manager.user_loader
def load_user(email):
    return get_user_by_email(email)


def session_user():
    """Logged-in user from the session cookie, or None."""
    if current_user.is_authenticated:
        return current_user._get_current_object()
    return None


def header_user():
    """User named by the X-User-Email header (mobile client)."""
    email = request.headers.get('X-User-Email')
    return get_user_by_email(normalize_email(email)) if email else None


def safe_next(url):
    """Only same-site relative paths are followed after a redirect."""
    if url and url.startswith('/') and not url.startswith('//'):
        return url
    return None


# === Pages ===

@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        try:
            user = authenticate(request.form.to_dict())
        except EatRealError as e:
            return render_template('login.html', error=e.message, email=request.form.get('email')), e.status_code

        login_user(user)
        logger.info('User %s logged in', user.email)
        return redirect(safe_next(request.args.get('next')) or url_for('views.index'))

    return render_template('login.html')


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    if request.method == 'POST':
        form = request.form.to_dict()
        if form.get('password') != form.pop('confirm_password', None):
            return render_template('register.html', error='Passwords do not match', form=form), 400

        try:
            user = register_user(form)
        except EatRealError as e:
            return render_template('register.html', error=e.message, form=form), e.status_code

        # Auto-login after registration
        login_user(user)
        return redirect(url_for('views.index'))

    return render_template('register.html', form={})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    session.clear()
    return redirect(url_for('views.index'))
