import pytest
from app import services
from app.errors import AuthError, AuthFailure
from conftest import PASSWORD


def test_check_credentials_is_case_insensitive(session, make_admin):
    admin = make_admin(email='admin@example.com')
    svc = services.AuthService(session)
    assert svc.check_credentials('Admin@Example.com', PASSWORD).id == admin.id
    assert svc.check_credentials('admin@example.com', PASSWORD).id == admin.id


def test_emails_are_stored_lower_cased(make_user):
    user = make_user(email='Mixed.Case@Example.COM')
    assert user.email == 'mixed.case@example.com'


@pytest.mark.parametrize('email, password, active, reason', [
    ('nobody@example.com', PASSWORD, True, AuthFailure.NOT_FOUND),
    ('admin@example.com', 'wrong-password', True, AuthFailure.BAD_PASSWORD),
    ('admin@example.com', PASSWORD, False, AuthFailure.INACTIVE),
])
def test_check_credentials_failures(session, make_admin, email, password, active, reason):
    make_admin(email='admin@example.com', is_active=active)
    with pytest.raises(AuthError) as exc:
        services.AuthService(session).check_credentials(email, password)
    assert exc.value.reason == reason
    assert exc.value.message == 'Invalid email or password'


def test_users_are_found_when_no_admin_matches(session, make_user):
    user = make_user(email='student@example.com')
    assert services.AuthService(session).check_credentials('STUDENT@example.com', PASSWORD).id == user.id


def test_admin_takes_precedence_over_user_with_same_email(session, make_admin, make_user):
    admin = make_admin(email='shared@example.com')
    make_user(email='shared@example.com')
    identity = services.AuthService(session).check_credentials('shared@example.com', PASSWORD)
    assert identity.id == admin.id
    assert services.identity_kind(identity) == 'admin'


def test_start_session_persists_only_token_hash(session, make_user):
    user = make_user()
    svc = services.AuthService(session)
    pair = svc.start_session(user)
    rows = svc.list_sessions(user.id)
    assert len(rows) == 1
    stored = svc.token_repo.find_active(services.hash_token(pair.refresh_token), services.models.utcnow())
    assert stored is not None
    assert stored.token_hash != pair.refresh_token


def test_purge_expired_tokens(session, make_user):
    from datetime import timedelta
    user = make_user()
    svc = services.AuthService(session)
    svc.start_session(user)
    svc.token_repo.create(services.models.RefreshToken(
        identity_id=user.id,
        identity_kind='user',
        token_hash='stale',
        expires_at=services.models.utcnow() - timedelta(days=1),
    ))
    assert svc.purge_expired_tokens() == 1
    assert len(svc.list_sessions(user.id)) == 1


def test_ensure_super_admin_creates_then_promotes(session, make_admin):
    svc = services.AuthService(session)
    admin = svc.ensure_super_admin('Root@Example.com', PASSWORD, 'Root')
    assert admin.is_super_admin and admin.email == 'root@example.com'
    again = svc.ensure_super_admin('root@example.com', PASSWORD, 'Root')
    assert again.id == admin.id

    plain = make_admin(email='plain@example.com', is_active=False)
    promoted = svc.ensure_super_admin('plain@example.com', 'new-password', 'Plain')
    assert promoted.id == plain.id
    assert promoted.is_super_admin and promoted.is_active
    assert svc.check_credentials('plain@example.com', 'new-password').id == plain.id
