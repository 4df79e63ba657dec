"""
OAuth2 / OpenID Connect login

Authorization code flow with PKCE against the configured provider
(Microsoft Entra ID by default). The state and code verifier live in the
session cookie between the redirect and the callback.
"""

import base64
import hashlib
import logging
import re
import secrets
from urllib.parse import urlencode

import requests
from flask import Blueprint, Response, current_app, redirect, request, session, url_for
from flask_login import login_user
from jose import JWTError, jwt
from pydantic import ValidationError

from auth import get_user_by_email
from models import User, db
from schemas import OAuthProfile

logger = logging.getLogger(__name__)

oauth_bp = Blueprint('oauth', __name__)

TOKEN_TIMEOUT = 10


def code_challenge(verifier):
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')


def authorization_url(state, verifier):
    cfg = current_app.config
    params = {
        'response_type': 'code',
        'client_id': cfg['OAUTH_CLIENT_ID'],
        'redirect_uri': cfg['OAUTH_REDIRECT_URI'],
        'scope': ' '.join(cfg['OAUTH_SCOPES']),
        'state': state,
        'code_challenge': code_challenge(verifier),
        'code_challenge_method': 'S256',
    }
    return f"{cfg['OAUTH_AUTHORIZE_URL']}?{urlencode(params)}"


def exchange_code(code, verifier):
    """Trade the authorization code for the provider's token response."""
    cfg = current_app.config
    resp = requests.post(
        cfg['OAUTH_TOKEN_URL'],
        data={
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': cfg['OAUTH_REDIRECT_URI'],
            'client_id': cfg['OAUTH_CLIENT_ID'],
            'client_secret': cfg['OAUTH_CLIENT_SECRET'],
            'code_verifier': verifier,
        },
        timeout=TOKEN_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.json()


def token_claims(tokens):
    # Unverified: tokens come straight from the token endpoint.
    # Access tokens are opaque for some providers; those are skipped.
    claims = {}
    for key in ('id_token', 'access_token'):
        token = tokens.get(key)
        if not token:
            continue
        try:
            claims.update(jwt.get_unverified_claims(token))
        except JWTError:
            logger.debug('%s is not a JWT, skipping', key)
    return claims


def is_admin_email(email):
    """First-login admin policy: a short alphanumeric mailbox name. Not a security control."""
    pattern = current_app.config['OAUTH_ADMIN_PATTERN']
    return bool(pattern) and re.match(pattern, email) is not None


def upsert_user(profile):
    user = get_user_by_email(profile.email)
    if user is not None:
        return user

    user = User(
        email=profile.email,
        first_name=profile.given_name,
        last_name=profile.family_name,
        admin=is_admin_email(profile.email),
    )
    db.session.add(user)
    db.session.commit()
    logger.info('Created OAuth user %s (admin=%s)', user.email, user.admin)
    return user


@oauth_bp.route('/oauth/login')
def oauth_login():
    state = secrets.token_urlsafe(32)
    verifier = secrets.token_urlsafe(64)
    session['oauth_state'] = state
    session['code_verifier'] = verifier
    return redirect(authorization_url(state, verifier))


@oauth_bp.route('/api/callback')
def callback():
    code = request.args.get('code')
    state = request.args.get('state')
    stored_state = session.get('oauth_state')
    verifier = session.get('code_verifier')

    if not (code and state and stored_state and verifier) or not secrets.compare_digest(state, stored_state):
        logger.warning('OAuth callback rejected: missing or mismatched state')
        return Response(status=400)

    try:
        tokens = exchange_code(code, verifier)
    except requests.RequestException:
        logger.exception('OAuth token exchange failed')
        return Response(status=500)

    try:
        profile = OAuthProfile.model_validate(token_claims(tokens))
    except ValidationError as e:
        logger.warning('OAuth claims incomplete: %s', e.errors()[0]['msg'])
        return Response(status=400)

    user = upsert_user(profile)

    session.pop('oauth_state', None)
    session.pop('code_verifier', None)
    login_user(user)
    return redirect(url_for('views.index'))
