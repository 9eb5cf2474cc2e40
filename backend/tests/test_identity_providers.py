import pytest
import requests
from inventory_iam import get_db
from inventory_iam.errors import IdentityProviderError
from inventory_iam.models.account import Credential
from inventory_iam.services import identity as identity_mod
from inventory_iam.services.identity import (
    KeycloakIdentityProvider, LocalIdentityProvider, build_identity_provider,
)


def test_local_provider_hashes_and_authenticates(app_instance):
    idp = LocalIdentityProvider(get_db)
    idp.provision_identity('l@x.com', 'pw123456')
    stored = get_db().query(Credential).filter_by(identity='l@x.com').one()
    assert stored.secret_hash != 'pw123456'
    assert idp.has_identity('l@x.com')
    assert idp.authenticate('l@x.com', 'pw123456')
    assert not idp.authenticate('l@x.com', 'wrong')
    assert not idp.authenticate('nobody@x.com', 'pw123456')


def test_local_provider_rejects_duplicate(app_instance):
    idp = LocalIdentityProvider(get_db)
    idp.provision_identity('l@x.com', 'pw123456')
    with pytest.raises(IdentityProviderError):
        idp.provision_identity('l@x.com', 'other-pw')


def test_build_identity_provider_selects_adapter():
    assert isinstance(build_identity_provider({'IDENTITY_PROVIDER': 'local'}, get_db), LocalIdentityProvider)
    kc = build_identity_provider({'IDENTITY_PROVIDER': 'keycloak', 'KC_BASE_URL': 'http://kc/'}, get_db)
    assert isinstance(kc, KeycloakIdentityProvider)
    assert kc.base_url == 'http://kc'
    with pytest.raises(ValueError):
        build_identity_provider({'IDENTITY_PROVIDER': 'ldap'}, get_db)


class _Resp:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(str(self.status_code))


KC_CFG = {
    'KC_BASE_URL': 'http://kc.local',
    'KC_REALM': 'inventory',
    'KC_ADMIN_CLIENT_SECRET': 's3cret',
}


def test_keycloak_provision_posts_user(monkeypatch):
    sent = []

    def fake_post(url, **kw):
        sent.append((url, kw))
        if url.endswith('/token'):
            return _Resp(200, {'access_token': 'adm'})
        return _Resp(201)

    monkeypatch.setattr(identity_mod.requests, 'post', fake_post)
    KeycloakIdentityProvider(KC_CFG).provision_identity('k@x.com', 'pw123456')
    token_url, token_kw = sent[0]
    assert token_url == 'http://kc.local/realms/master/protocol/openid-connect/token'
    assert token_kw['data']['grant_type'] == 'client_credentials'
    user_url, user_kw = sent[1]
    assert user_url == 'http://kc.local/admin/realms/inventory/users'
    assert user_kw['headers']['Authorization'] == 'Bearer adm'
    assert user_kw['json']['email'] == 'k@x.com'
    assert user_kw['json']['credentials'][0]['value'] == 'pw123456'


def test_keycloak_conflict_and_outage(monkeypatch):
    def conflict(url, **kw):
        return _Resp(200, {'access_token': 'adm'}) if url.endswith('/token') else _Resp(409)

    monkeypatch.setattr(identity_mod.requests, 'post', conflict)
    with pytest.raises(IdentityProviderError, match='already provisioned'):
        KeycloakIdentityProvider(KC_CFG).provision_identity('k@x.com', 'pw123456')

    def down(url, **kw):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(identity_mod.requests, 'post', down)
    with pytest.raises(IdentityProviderError, match='unreachable'):
        KeycloakIdentityProvider(KC_CFG).provision_identity('k@x.com', 'pw123456')


def test_keycloak_requires_admin_secret():
    with pytest.raises(IdentityProviderError, match='KC_ADMIN_CLIENT_SECRET'):
        KeycloakIdentityProvider({'KC_BASE_URL': 'http://kc.local'}).provision_identity('k@x.com', 'pw123456')


def test_keycloak_has_identity_and_authenticate(monkeypatch):
    monkeypatch.setattr(identity_mod.requests, 'get',
                        lambda url, **kw: _Resp(200, [{'id': '1', 'email': kw['params']['email']}]))

    def post(url, **kw):
        if kw['data']['grant_type'] == 'client_credentials':
            return _Resp(200, {'access_token': 'adm'})
        if kw['data']['password'] == 'good-pw':
            return _Resp(200, {'access_token': 'user'})
        return _Resp(401, {'error': 'invalid_grant'})

    monkeypatch.setattr(identity_mod.requests, 'post', post)
    idp = KeycloakIdentityProvider(KC_CFG)
    assert idp.has_identity('k@x.com')
    assert idp.authenticate('k@x.com', 'good-pw')
    assert not idp.authenticate('k@x.com', 'bad-pw')


def test_local_reset_secret(app_instance):
    idp = LocalIdentityProvider(get_db)
    idp.provision_identity('l@x.com', 'pw123456')
    idp.reset_secret('l@x.com', 'new-secret')
    assert idp.authenticate('l@x.com', 'new-secret')
    assert not idp.authenticate('l@x.com', 'pw123456')
    with pytest.raises(IdentityProviderError, match='not provisioned'):
        idp.reset_secret('nobody@x.com', 'new-secret')


def test_keycloak_reset_secret_puts_temporary_password(monkeypatch):
    put_calls = []
    monkeypatch.setattr(identity_mod.requests, 'post', lambda url, **kw: _Resp(200, {'access_token': 'adm'}))
    monkeypatch.setattr(identity_mod.requests, 'get',
                        lambda url, **kw: _Resp(200, [{'id': 'kc-42', 'email': kw['params']['email']}]))

    def fake_put(url, **kw):
        put_calls.append((url, kw))
        return _Resp(204)

    monkeypatch.setattr(identity_mod.requests, 'put', fake_put)
    KeycloakIdentityProvider(KC_CFG).reset_secret('k@x.com', 'fresh-pw')
    url, kw = put_calls[0]
    assert url == 'http://kc.local/admin/realms/inventory/users/kc-42/reset-password'
    assert kw['json'] == {'type': 'password', 'value': 'fresh-pw', 'temporary': True}

    monkeypatch.setattr(identity_mod.requests, 'get', lambda url, **kw: _Resp(200, []))
    with pytest.raises(IdentityProviderError, match='not provisioned'):
        KeycloakIdentityProvider(KC_CFG).reset_secret('k@x.com', 'fresh-pw')
