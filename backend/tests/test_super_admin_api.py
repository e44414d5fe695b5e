import pytest
from app import models, services
from app.repositories import RefreshTokenRepository

SUPER_EMAIL = 'root@example.com'


@pytest.fixture
def as_super(make_admin, login):
    root = make_admin(email=SUPER_EMAIL, full_name='Root Admin', is_super_admin=True)
    login(SUPER_EMAIL)
    return root


def _new_admin(client, email='new.admin@example.com', **extra):
    payload = {'fullName': 'New Admin', 'email': email, 'password': 'secret1'}
    payload.update(extra)
    return client.post('/super-admin/admins', json=payload)


def test_plain_admins_cannot_manage_accounts(client, make_admin, login):
    make_admin()
    login('admin@example.com')
    for r in (client.get('/super-admin/admins'), client.get('/super-admin/stats'), _new_admin(client)):
        assert r.status_code == 403
        assert r.json() == {'success': False, 'message': 'Super admin access required'}


def test_students_cannot_manage_accounts(client, make_user, login):
    make_user()
    login('student@example.com')
    r = client.get('/super-admin/users')
    assert r.status_code == 403
    assert r.json()['message'] == 'Admin access required'


def test_create_admin_records_its_creator(client, as_super):
    r = _new_admin(client, email='  New.Admin@Example.com ')
    assert r.status_code == 201
    assert r.json()['message'] == 'Admin created successfully'
    created = r.json()['data']['admin']
    assert created['email'] == 'new.admin@example.com'
    assert created['createdById'] == as_super.id
    assert created['creator'] == {'id': as_super.id, 'fullName': 'Root Admin', 'email': SUPER_EMAIL}
    assert created['isSuperAdmin'] is False
    assert 'passwordHash' not in created

    fetched = client.get(f"/super-admin/admins/{created['id']}").json()['data']
    assert fetched['createdById'] == as_super.id

    listed = client.get('/super-admin/admins').json()
    assert listed['message'] == 'Admins retrieved successfully'
    by_id = {a['id']: a for a in listed['data']['admins']}
    assert by_id[created['id']]['creator']['id'] == as_super.id
    assert 'creator' not in by_id[as_super.id]

    # the new account can sign in
    r = client.post('/auth/login', json={'email': 'new.admin@example.com', 'password': 'secret1'})
    assert r.status_code == 200


def test_create_admin_rejects_taken_emails(client, as_super, make_user):
    make_user(email='taken@example.com')
    r = _new_admin(client, email=SUPER_EMAIL)
    assert r.status_code == 400
    assert r.json()['message'] == 'An admin with this email already exists'
    r = _new_admin(client, email='taken@example.com')
    assert r.status_code == 400
    assert r.json()['message'] == 'This email is already registered as a user account'


@pytest.mark.parametrize('override, field', [
    ({'fullName': 'R2 D2'}, 'fullName'),
    ({'password': '12345'}, 'password'),
    ({'email': 'x'}, 'email'),
])
def test_create_admin_validation(client, as_super, override, field):
    r = _new_admin(client, **override)
    assert r.status_code == 400
    assert field in [e['field'] for e in r.json()['errors']]


def test_unknown_admin_is_404(client, as_super):
    r = client.get('/super-admin/admins/missing')
    assert r.status_code == 404
    assert r.json()['message'] == 'Admin not found'


def test_toggle_admin_status(client, as_super, make_admin):
    target = make_admin(email='staff@example.com')
    r = client.put(f'/super-admin/admins/{target.id}/toggle-status')
    assert r.status_code == 200
    assert r.json()['message'] == 'Admin deactivated successfully'
    assert r.json()['data']['admin']['isActive'] is False

    r = client.post('/auth/login', json={'email': 'staff@example.com', 'password': 'correct-horse-battery'})
    assert r.status_code == 401

    r = client.put(f'/super-admin/admins/{target.id}/toggle-status')
    assert r.json()['message'] == 'Admin activated successfully'
    assert r.json()['data']['admin']['isActive'] is True


def test_super_admins_cannot_act_on_themselves_or_peers(client, as_super, make_admin):
    peer = make_admin(email='peer@example.com', is_super_admin=True)

    r = client.put(f'/super-admin/admins/{as_super.id}/toggle-status')
    assert r.status_code == 400
    assert r.json()['message'] == 'You cannot change your own status'
    r = client.delete(f'/super-admin/admins/{as_super.id}')
    assert r.status_code == 400
    assert r.json()['message'] == 'You cannot delete yourself'

    r = client.put(f'/super-admin/admins/{peer.id}/toggle-status')
    assert r.status_code == 403
    assert r.json()['message'] == 'Cannot change status of other super admins'
    r = client.delete(f'/super-admin/admins/{peer.id}')
    assert r.status_code == 403
    assert r.json()['message'] == 'Cannot delete other super admins'


def test_delete_admin_deactivates_and_revokes_sessions(client, as_super, make_admin, session):
    target = make_admin(email='leaving@example.com')
    services.AuthService(session).start_session(target)
    tokens = RefreshTokenRepository(session)
    assert len(tokens.list_active(target.id, models.utcnow())) == 1

    r = client.delete(f'/super-admin/admins/{target.id}')
    assert r.json() == {'success': True, 'message': 'Admin deleted successfully'}
    assert tokens.list_active(target.id, models.utcnow()) == []
    # the row is kept, only deactivated
    fetched = client.get(f'/super-admin/admins/{target.id}').json()['data']
    assert fetched['isActive'] is False


def test_admin_stats(client, as_super, make_admin):
    make_admin(email='a@example.com')
    make_admin(email='b@example.com', is_active=False)
    r = client.get('/super-admin/stats')
    assert r.json()['data'] == {'total': 3, 'active': 2, 'inactive': 1, 'superAdmins': 1}


def test_manage_user_accounts(client, as_super, make_user):
    student = make_user()
    users = client.get('/super-admin/users').json()['data']['users']
    assert [u['id'] for u in users] == [student.id]
    assert users[0]['role'] == 'user'

    r = client.put(f'/super-admin/users/{student.id}/status', json={'isActive': False})
    assert r.status_code == 200
    assert r.json()['data']['user']['isActive'] is False
    r = client.post('/auth/login', json={'email': 'student@example.com', 'password': 'correct-horse-battery'})
    assert r.status_code == 401

    r = client.put('/super-admin/users/missing/status', json={'isActive': True})
    assert r.status_code == 404
    assert r.json()['message'] == 'User not found'
    r = client.put(f'/super-admin/users/{student.id}/status', json={})
    assert r.status_code == 400
