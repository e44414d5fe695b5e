from datetime import datetime, timedelta, timezone
import jwt
import pytest
from app import services
from app.config import Settings, parse_duration, settings
from app.errors import AuthError, AuthFailure

CLAIM = {'identity_id': 'abc123', 'email': 'admin@example.com', 'full_name': 'Ada Admin', 'kind': 'admin'}


@pytest.fixture
def tokens():
    return services.TokenService()


def test_access_token_round_trip(tokens):
    pair = tokens.issue_token_pair(CLAIM)
    claims = tokens.verify_token(pair.access_token, settings.JWT_ACCESS_SECRET, settings.JWT_ISSUER, settings.JWT_AUDIENCE)
    assert claims['identity_id'] == 'abc123'
    assert claims['type'] == 'access'
    assert claims['email'] == 'admin@example.com'
    assert claims['full_name'] == 'Ada Admin'
    assert claims['iss'] == settings.JWT_ISSUER
    assert claims['aud'] == settings.JWT_AUDIENCE


def test_refresh_token_round_trip(tokens):
    pair = tokens.issue_token_pair(CLAIM)
    claims = tokens.verify_refresh_token(pair.refresh_token)
    assert claims['type'] == 'refresh'
    assert pair.access_token != pair.refresh_token


def test_default_lifetimes(tokens):
    pair = tokens.issue_token_pair(CLAIM)
    assert pair.access_expires_in == '15m'
    assert pair.refresh_expires_in == '7d'
    access = jwt.decode(pair.access_token, options={'verify_signature': False})
    refresh = jwt.decode(pair.refresh_token, options={'verify_signature': False})
    assert access['exp'] - access['iat'] == 15 * 60
    assert refresh['exp'] - refresh['iat'] == 7 * 24 * 3600


def test_refresh_secret_does_not_verify_access_token(tokens):
    pair = tokens.issue_token_pair(CLAIM)
    with pytest.raises(AuthError) as exc:
        tokens.verify_token(pair.access_token, settings.JWT_REFRESH_SECRET, settings.JWT_ISSUER, settings.JWT_AUDIENCE)
    assert exc.value.reason == AuthFailure.INVALID_SIGNATURE


def test_access_token_rejected_where_refresh_expected(tokens):
    pair = tokens.issue_token_pair(CLAIM)
    with pytest.raises(AuthError) as exc:
        tokens.verify_token(pair.access_token, settings.JWT_ACCESS_SECRET, settings.JWT_ISSUER, settings.JWT_AUDIENCE, expected_type='refresh')
    assert exc.value.reason == AuthFailure.CLAIM_MISMATCH


def test_expired_token(tokens):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode(
        {**CLAIM, 'type': 'access', 'iat': past - timedelta(minutes=15), 'exp': past,
         'iss': settings.JWT_ISSUER, 'aud': settings.JWT_AUDIENCE},
        settings.JWT_ACCESS_SECRET,
        algorithm='HS256',
    )
    with pytest.raises(AuthError) as exc:
        tokens.verify_access_token(token)
    assert exc.value.reason == AuthFailure.EXPIRED


@pytest.mark.parametrize('issuer, audience', [('someone-else', settings.JWT_AUDIENCE), (settings.JWT_ISSUER, 'other-audience')])
def test_issuer_or_audience_mismatch(tokens, issuer, audience):
    pair = tokens.issue_token_pair(CLAIM)
    with pytest.raises(AuthError) as exc:
        tokens.verify_token(pair.access_token, settings.JWT_ACCESS_SECRET, issuer, audience)
    assert exc.value.reason == AuthFailure.CLAIM_MISMATCH


def test_malformed_token_is_invalid_signature(tokens):
    with pytest.raises(AuthError) as exc:
        tokens.verify_access_token('invalid.token.here')
    assert exc.value.reason == AuthFailure.INVALID_SIGNATURE


def test_auth_error_messages_are_generic():
    assert AuthError(AuthFailure.NOT_FOUND).message == AuthError(AuthFailure.BAD_PASSWORD).message
    assert AuthError(AuthFailure.EXPIRED).message == AuthError(AuthFailure.INVALID_SIGNATURE).message


def test_parse_duration():
    assert parse_duration('15m') == timedelta(minutes=15)
    assert parse_duration('7d') == timedelta(days=7)
    assert parse_duration('2h') == timedelta(hours=2)
    assert parse_duration('30s') == timedelta(seconds=30)
    with pytest.raises(ValueError):
        parse_duration('soon')


def test_missing_secret_is_configuration_failure(monkeypatch):
    monkeypatch.delenv('JWT_REFRESH_SECRET', raising=False)
    with pytest.raises(RuntimeError):
        Settings()


def test_identical_secrets_are_configuration_failure(monkeypatch):
    monkeypatch.setenv('JWT_REFRESH_SECRET', settings.JWT_ACCESS_SECRET)
    with pytest.raises(RuntimeError):
        Settings()


def test_bad_duration_is_configuration_failure(monkeypatch):
    monkeypatch.setenv('JWT_ACCESS_EXPIRES_IN', 'forever')
    with pytest.raises(RuntimeError):
        Settings()
