"""
Seeding, the trial-expiry task and production config checks.
"""
from datetime import timedelta

import pytest

from clinicdesk.config import DEFAULT_SECRET, validate_config
from clinicdesk.models.base import utcnow
from clinicdesk.seeds import seed_reference_data
from tasks.subscription_tasks import expire_trials


def test_seeding_is_repeatable(app):
    assert seed_reference_data() == (0, 0)


def test_seed_cli(app):
    result = app.test_cli_runner().invoke(args=['seed'])
    assert result.exit_code == 0
    assert 'Seeded 0 roles and 0 plans' in result.output


def test_expire_trials_task(owner, store):
    with store.transaction():
        store.find_subscription(owner['clinicId']).trial_ends_at = utcnow() - timedelta(days=1)

    result = expire_trials.run()
    assert result['expired_count'] == 1
    store.session.expire_all()
    assert store.find_subscription(owner['clinicId']).status == 'past_due'


@pytest.mark.parametrize('config', [
    {'SECRET_KEY': DEFAULT_SECRET, 'JWT_SECRET_KEY': 'x' * 40},
    {'SECRET_KEY': 'x' * 40, 'JWT_SECRET_KEY': ''},
])
def test_production_refuses_default_secrets(config):
    with pytest.raises(ValueError):
        validate_config(dict(config, DEBUG=False, TESTING=False))


def test_debug_allows_default_secrets():
    validate_config({'SECRET_KEY': DEFAULT_SECRET, 'JWT_SECRET_KEY': DEFAULT_SECRET, 'DEBUG': True})
