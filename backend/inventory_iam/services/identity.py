"""
Identity provider adapters: who may authenticate, independent of who may use the system.

Design:
- `IdentityProvider` is the contract the lifecycle controller and login route need.
- `LocalIdentityProvider` keeps salted werkzeug hashes in the `credentials` table.
- `KeycloakIdentityProvider` provisions users through the Keycloak Admin REST API.

Security:
- Do not log secrets or tokens.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping

import requests
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_iam.errors import IdentityProviderError
from inventory_iam.models.account import Credential

log = logging.getLogger(__name__)


class IdentityProvider(ABC):
    @abstractmethod
    def provision_identity(self, identity: str, initial_secret: str) -> None:
        """Create a login for identity. Raises IdentityProviderError on failure."""

    @abstractmethod
    def has_identity(self, identity: str) -> bool: ...

    @abstractmethod
    def reset_secret(self, identity: str, secret: str) -> None:
        """Replace the secret of an existing identity (temporary where the provider supports it)."""

    @abstractmethod
    def authenticate(self, identity: str, secret: str) -> bool: ...


class LocalIdentityProvider(IdentityProvider):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _find(self, session: Session, identity: str):
        return session.execute(select(Credential).where(Credential.identity == identity)).scalar_one_or_none()

    def provision_identity(self, identity: str, initial_secret: str) -> None:
        session = self._session_factory()
        try:
            if self._find(session, identity) is not None:
                raise IdentityProviderError('identity already provisioned')
            cred = Credential(identity=identity)
            cred.set_secret(initial_secret)
            session.add(cred)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            log.error('credential provisioning failed: %s', e)
            raise IdentityProviderError('identity provisioning failed') from e
        log.info('provisioned local identity %s', identity)

    def has_identity(self, identity: str) -> bool:
        session = self._session_factory()
        try:
            return self._find(session, identity) is not None
        except SQLAlchemyError as e:
            session.rollback()
            raise IdentityProviderError('identity lookup failed') from e

    def reset_secret(self, identity: str, secret: str) -> None:
        session = self._session_factory()
        try:
            cred = self._find(session, identity)
            if cred is None:
                raise IdentityProviderError('identity not provisioned')
            cred.set_secret(secret)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            log.error('credential reset failed: %s', e)
            raise IdentityProviderError('secret reset failed') from e
        log.info('reset local secret for %s', identity)

    def authenticate(self, identity: str, secret: str) -> bool:
        session = self._session_factory()
        try:
            cred = self._find(session, identity)
        except SQLAlchemyError as e:
            session.rollback()
            raise IdentityProviderError('identity lookup failed') from e
        return bool(cred and cred.verify_secret(secret))


class KeycloakIdentityProvider(IdentityProvider):
    """Minimal Keycloak Admin client; configuration comes from the Flask config mapping."""

    def __init__(self, cfg: Mapping[str, Any]):
        self.base_url = str(cfg.get('KC_BASE_URL') or 'http://localhost:8080').rstrip('/')
        self.realm = cfg.get('KC_REALM') or 'inventory'
        self.admin_realm = cfg.get('KC_ADMIN_REALM') or 'master'
        self.admin_client_id = cfg.get('KC_ADMIN_CLIENT_ID') or 'admin-cli'
        self.admin_client_secret = cfg.get('KC_ADMIN_CLIENT_SECRET')
        self.login_client_id = cfg.get('KC_LOGIN_CLIENT_ID') or 'inventory-web'
        self.timeout = float(cfg.get('KC_HTTP_TIMEOUT') or 10)

    def _token_url(self, realm: str) -> str:
        return f"{self.base_url}/realms/{realm}/protocol/openid-connect/token"

    def _users_url(self) -> str:
        return f"{self.base_url}/admin/realms/{self.realm}/users"

    def _admin_token(self) -> str:
        if not self.admin_client_secret:
            raise IdentityProviderError('Keycloak admin credentials missing: set KC_ADMIN_CLIENT_SECRET')
        data = {
            'grant_type': 'client_credentials',
            'client_id': self.admin_client_id,
            'client_secret': self.admin_client_secret,
        }
        try:
            r = requests.post(self._token_url(self.admin_realm), data=data, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise IdentityProviderError('identity provider unreachable') from e
        tok = (r.json() or {}).get('access_token')
        if not tok:
            raise IdentityProviderError('identity provider token missing')
        return str(tok)

    def _hdr(self, token: str) -> Dict[str, str]:
        return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}

    def _lookup(self, token: str, identity: str) -> list:
        try:
            q = requests.get(
                self._users_url(), headers=self._hdr(token),
                params={'email': identity, 'exact': True}, timeout=self.timeout,
            )
            q.raise_for_status()
        except requests.RequestException as e:
            raise IdentityProviderError('identity lookup failed') from e
        return q.json() or []

    def provision_identity(self, identity: str, initial_secret: str) -> None:
        token = self._admin_token()
        payload = {
            'username': identity,
            'email': identity,
            'enabled': True,
            'emailVerified': False,
            'credentials': [{'type': 'password', 'value': initial_secret, 'temporary': True}],
        }
        try:
            r = requests.post(self._users_url(), headers=self._hdr(token), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityProviderError('identity provider unreachable') from e
        if r.status_code == 409:
            raise IdentityProviderError('identity already provisioned')
        if r.status_code not in (201, 204):
            log.error('keycloak user create returned %s', r.status_code)
            raise IdentityProviderError('identity provisioning failed')
        log.info('provisioned keycloak identity %s', identity)

    def has_identity(self, identity: str) -> bool:
        return any(u.get('email') == identity for u in self._lookup(self._admin_token(), identity))

    def reset_secret(self, identity: str, secret: str) -> None:
        token = self._admin_token()
        user_id = next((u.get('id') for u in self._lookup(token, identity) if u.get('email') == identity), None)
        if not user_id:
            raise IdentityProviderError('identity not provisioned')
        pw = {'type': 'password', 'value': secret, 'temporary': True}
        try:
            r = requests.put(f"{self._users_url()}/{user_id}/reset-password",
                             headers=self._hdr(token), json=pw, timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityProviderError('identity provider unreachable') from e
        if r.status_code != 204:
            log.error('keycloak reset-password returned %s', r.status_code)
            raise IdentityProviderError('secret reset failed')
        log.info('reset keycloak secret for %s', identity)

    def authenticate(self, identity: str, secret: str) -> bool:
        data = {
            'grant_type': 'password',
            'client_id': self.login_client_id,
            'username': identity,
            'password': secret,
        }
        try:
            r = requests.post(self._token_url(self.realm), data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityProviderError('identity provider unreachable') from e
        if r.status_code in (400, 401):
            return False
        if r.status_code != 200:
            raise IdentityProviderError('identity provider error')
        return bool((r.json() or {}).get('access_token'))


def build_identity_provider(cfg: Mapping[str, Any], session_factory: Callable[[], Session]) -> IdentityProvider:
    kind = (cfg.get('IDENTITY_PROVIDER') or 'local').lower()
    if kind == 'local':
        return LocalIdentityProvider(session_factory)
    if kind == 'keycloak':
        return KeycloakIdentityProvider(cfg)
    raise ValueError(f'Unknown IDENTITY_PROVIDER {kind!r}')


__all__ = [
    'IdentityProvider', 'LocalIdentityProvider', 'KeycloakIdentityProvider', 'build_identity_provider',
]
