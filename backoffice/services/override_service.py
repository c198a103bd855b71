"""
Override gate for verified units and protected transitions.

A shared username/password pair (plus an optional alternate pair) from
configuration. It is a deliberately lightweight gate: no per-user roles, no
tokens, no elevated session and no lockout after failed attempts. Every
protected call presents the credentials again.
"""
import hmac
import logging

from backoffice.exceptions import AuthorizationError
from backoffice.utils.domain_metrics import override_checks_total

logger = logging.getLogger(__name__)


class OverrideGate:
    """Checks override credentials against configured pairs."""

    def __init__(self, pairs):
        # Pairs with an empty username or password can never match
        self._pairs = [(u, p) for u, p in pairs if u and p]

    @classmethod
    def from_config(cls, config):
        return cls([
            (config.get('OVERRIDE_USERNAME', ''), config.get('OVERRIDE_PASSWORD', '')),
            (config.get('OVERRIDE_ALT_USERNAME', ''), config.get('OVERRIDE_ALT_PASSWORD', '')),
        ])

    @property
    def configured(self):
        return bool(self._pairs)

    def is_valid(self, credentials) -> bool:
        if credentials is None:
            return False
        username = (credentials.username or '').strip()
        password = credentials.password or ''
        matched = False
        for expected_user, expected_password in self._pairs:
            # Every pair is compared, matched or not
            user_ok = hmac.compare_digest(username.encode(), expected_user.encode())
            password_ok = hmac.compare_digest(password.encode(), expected_password.encode())
            matched = matched or (user_ok and password_ok)
        return matched

    def permits(self, credentials, action: str = 'protected action') -> bool:
        """Check credentials, recording the outcome; never raises."""
        if self.is_valid(credentials):
            override_checks_total.labels(result='granted').inc()
            logger.info(f"Override granted for {action}")
            return True

        override_checks_total.labels(result='denied').inc()
        if credentials is None:
            logger.warning(f"Override required but not supplied for {action}")
        else:
            logger.warning(f"Override denied for {action}")
        return False

    def check(self, credentials, action: str = 'protected action'):
        """
        Raise AuthorizationError unless the credentials match a configured pair.

        Args:
            credentials: OverrideCredentials or None
            action: Short description used in logs only
        """
        if not self.permits(credentials, action):
            raise AuthorizationError('Invalid admin credentials')
