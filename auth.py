"""Identity for the dashboard.

``AuthProvider`` stands in for the hosted auth service: it owns the ``user``
table and tells listeners when someone signs in or out. ``SessionHolder`` is
what the rest of the app sees: the current user plus a loading flag.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from models import User, db

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('full_name', 'display_name', 'avatar_url')


class AuthError(Exception):
    pass


class AuthProvider:
    def __init__(self):
        self._current_id = None
        self._listeners = []

    def get_user(self, user_id=None):
        user_id = user_id if user_id is not None else self._current_id
        if user_id is None:
            return None
        user = db.session.get(User, user_id)
        return user.to_dict() if user else None

    def sign_in(self, email):
        email = (email or '').strip().lower()
        if not email:
            raise AuthError("Missing email")
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email)
            db.session.add(user)
            db.session.commit()
            logger.info("Created account for %s", email)
        self._current_id = user.id
        self._emit('SIGNED_IN', user.to_dict())
        return user.to_dict()

    def sign_out(self):
        self._current_id = None
        self._emit('SIGNED_OUT', None)

    def update_user(self, user_id, data):
        user = db.session.get(User, user_id)
        if not user:
            raise AuthError("User not found")
        for key, value in data.items():
            if key in PROFILE_FIELDS:
                setattr(user, key, value)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise AuthError(str(exc)) from exc
        profile = user.to_dict()
        self._emit('USER_UPDATED', profile)
        return profile

    def on_auth_state_change(self, callback):
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _emit(self, event, user):
        for callback in list(self._listeners):
            callback(event, user)


class SessionHolder:
    """Current user and loading flag, kept in step with the provider."""

    def __init__(self, provider, initial_user=None):
        self.provider = provider
        self.user = initial_user
        self.loading = initial_user is None
        self._subscribers = []
        self._unsubscribe = provider.on_auth_state_change(self._on_change)

    def resolve(self):
        if self.user is None:
            self.user = self.provider.get_user()
        self.loading = False
        return self.user

    def refresh(self):
        if self.user is not None:
            self.user = self.provider.get_user(self.user['id'])
        return self.user

    @property
    def user_id(self):
        return self.user['id'] if self.user else None

    def subscribe(self, callback):
        self._subscribers.append(callback)

    def close(self):
        self._unsubscribe()
        self._subscribers = []

    def _on_change(self, event, user):
        previous = self.user
        self.user = user
        self.loading = False
        for callback in list(self._subscribers):
            callback(event, previous, user)


def display_name(user, fallback="Pomodoro"):
    if not user:
        return fallback
    name = (user.get('full_name') or user.get('display_name')
            or (user.get('email') or '').split('@')[0] or fallback)
    return name.split(' ')[0]
