import pytest
from inventory_iam.constants.roles import Action, Role
from inventory_iam.errors import AuthorizationError
from inventory_iam.services.policy import RULES, Target, authorize, decide, precheck

MUTATIONS = [Action.CREATE, Action.EDIT, Action.DELETE]


@pytest.mark.parametrize('actor', [Role.OPERATOR, Role.REPORTER])
@pytest.mark.parametrize('action', MUTATIONS)
@pytest.mark.parametrize('target_role', list(Role))
def test_non_managers_cannot_mutate(actor, action, target_role):
    d = decide(actor, action, Target(role=target_role))
    assert not d.allowed
    assert d.reason == 'insufficient privilege'


@pytest.mark.parametrize('actor', list(Role))
@pytest.mark.parametrize('target_role', list(Role))
def test_view_always_allowed(actor, target_role):
    assert decide(actor, Action.VIEW, Target(role=target_role)).allowed


@pytest.mark.parametrize('action', list(Action))
@pytest.mark.parametrize('target_role', list(Role))
@pytest.mark.parametrize('is_self', [False, True])
def test_super_admin_allowed_everything(action, target_role, is_self):
    target = Target(role=target_role, is_self=is_self, requested_role=Role.REPORTER)
    assert decide(Role.SUPER_ADMIN, action, target).allowed


def test_super_admin_may_change_own_role():
    d = decide(Role.SUPER_ADMIN, Action.EDIT, Target(role=Role.SUPER_ADMIN, is_self=True, requested_role=Role.ADMIN))
    assert d.allowed


@pytest.mark.parametrize('requested', [Role.SUPER_ADMIN, Role.ADMIN])
def test_admin_cannot_create_privileged(requested):
    d = decide(Role.ADMIN, Action.CREATE, Target(role=requested))
    assert not d.allowed
    assert d.reason == 'Admins can only create Operator or Reporter users.'


@pytest.mark.parametrize('requested', [Role.OPERATOR, Role.REPORTER])
def test_admin_can_create_staff(requested):
    assert decide(Role.ADMIN, Action.CREATE, Target(role=requested)).allowed


@pytest.mark.parametrize('target_role', [Role.SUPER_ADMIN, Role.ADMIN])
@pytest.mark.parametrize('is_self', [False, True])
def test_admin_cannot_edit_privileged_accounts(target_role, is_self):
    d = decide(Role.ADMIN, Action.EDIT, Target(role=target_role, is_self=is_self))
    assert not d.allowed
    assert d.reason == 'Admins cannot edit Super Admin or Admin users.'


@pytest.mark.parametrize('target_role', [Role.SUPER_ADMIN, Role.ADMIN])
@pytest.mark.parametrize('is_self', [False, True])
def test_admin_cannot_delete_privileged_accounts(target_role, is_self):
    d = decide(Role.ADMIN, Action.DELETE, Target(role=target_role, is_self=is_self))
    assert not d.allowed
    assert d.reason == 'Admins cannot delete Super Admin or Admin users.'


def test_admin_deleting_admin_uses_delete_wording():
    d = decide(Role.ADMIN, Action.DELETE, Target(role=Role.ADMIN))
    assert d.reason != 'Admins cannot delete Super Admin users.'
    assert d.reason == 'Admins cannot delete Super Admin or Admin users.'
    assert d.rule == 'admin-protected-target'


@pytest.mark.parametrize('own_role,requested', [
    (Role.OPERATOR, Role.REPORTER),
    (Role.REPORTER, Role.OPERATOR),
])
def test_admin_cannot_change_own_role(own_role, requested):
    # an Admin-class actor whose account somehow holds a staff role
    d = decide(Role.ADMIN, Action.EDIT, Target(role=own_role, is_self=True, requested_role=requested))
    assert not d.allowed
    assert d.reason == 'Admins cannot change their own role.'


def test_admin_self_edit_keeping_role_falls_through_to_allow():
    d = decide(Role.ADMIN, Action.EDIT, Target(role=Role.OPERATOR, is_self=True, requested_role=Role.OPERATOR))
    assert d.allowed


@pytest.mark.parametrize('action', [Action.EDIT, Action.DELETE])
@pytest.mark.parametrize('target_role', [Role.OPERATOR, Role.REPORTER])
def test_admin_manages_staff(action, target_role):
    assert decide(Role.ADMIN, action, Target(role=target_role)).allowed


@pytest.mark.parametrize('requested', [Role.SUPER_ADMIN, Role.ADMIN])
def test_admin_cannot_promote_staff(requested):
    d = decide(Role.ADMIN, Action.EDIT, Target(role=Role.OPERATOR, requested_role=requested))
    assert not d.allowed
    assert d.reason == 'Admins can only assign Operator or Reporter roles.'


def test_admin_can_move_staff_between_staff_roles():
    assert decide(Role.ADMIN, Action.EDIT, Target(role=Role.REPORTER, requested_role=Role.OPERATOR)).allowed


def test_rule_table_order_is_explicit():
    names = [r.name for r in RULES]
    assert names[0] == 'non-manager'
    assert names[1] == 'super-admin'
    assert names.index('admin-protected-target') < names.index('admin-own-role')
    assert names[-1] == 'default'


def test_authorize_raises_with_reason():
    with pytest.raises(AuthorizationError) as exc:
        authorize(Role.ADMIN, Action.EDIT, Target(role=Role.SUPER_ADMIN))
    assert exc.value.reason == 'Admins cannot edit Super Admin or Admin users.'
    assert exc.value.status == 403


def test_precheck_rejects_only_target_independent_denials():
    with pytest.raises(AuthorizationError):
        precheck(Role.REPORTER, Action.DELETE)
    precheck(Role.ADMIN, Action.DELETE)
    precheck(Role.REPORTER, Action.VIEW)
