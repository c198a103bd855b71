"""
Unit tests for the override credential gate.
"""

import pytest

from backoffice.exceptions import AuthorizationError
from backoffice.schemas import OverrideCredentials
from backoffice.services.override_service import OverrideGate


@pytest.fixture
def two_pair_gate():
    return OverrideGate([('admin', 'admin-secret'), ('manager', 'manager-secret')])


class TestOverrideGate:

    def test_primary_pair_passes(self, two_pair_gate):
        two_pair_gate.check(OverrideCredentials('admin', 'admin-secret'))

    def test_alternate_pair_passes(self, two_pair_gate):
        assert two_pair_gate.permits(OverrideCredentials('manager', 'manager-secret')) is True

    def test_pairs_are_not_mixed(self, two_pair_gate):
        assert two_pair_gate.permits(OverrideCredentials('admin', 'manager-secret')) is False

    def test_missing_credentials_fail(self, two_pair_gate):
        with pytest.raises(AuthorizationError) as exc:
            two_pair_gate.check(None)
        assert exc.value.status_code == 403
        assert exc.value.kind == 'authorization'

    def test_failure_message_is_generic(self, two_pair_gate):
        with pytest.raises(AuthorizationError) as exc:
            two_pair_gate.check(OverrideCredentials('admin', 'wrong'))
        assert exc.value.message == 'Invalid admin credentials'

    def test_username_is_trimmed(self, two_pair_gate):
        assert two_pair_gate.permits(OverrideCredentials('  admin ', 'admin-secret')) is True

    def test_password_is_not_trimmed(self, two_pair_gate):
        assert two_pair_gate.permits(OverrideCredentials('admin', 'admin-secret ')) is False

    def test_unconfigured_gate_denies_everything(self):
        gate = OverrideGate([('', ''), ('admin', '')])

        assert gate.configured is False
        assert gate.permits(OverrideCredentials('', '')) is False
        assert gate.permits(OverrideCredentials('admin', '')) is False

    def test_from_config(self):
        gate = OverrideGate.from_config({
            'OVERRIDE_USERNAME': 'boss',
            'OVERRIDE_PASSWORD': 'pw',
        })

        assert gate.configured is True
        assert gate.permits(OverrideCredentials('boss', 'pw')) is True
