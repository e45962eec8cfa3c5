"""
Unit tests for GPS power coordination and crash recovery.
"""

from friendfinder import config
from friendfinder.power import PowerCoordinator
from friendfinder.sim import MemoryHostConfig
from friendfinder.storage import MemoryStore, StoredHostConfig


def test_boost_and_restore():
    host = MemoryHostConfig(interval=30)
    power = PowerCoordinator(host)

    assert power.boost()
    assert host.interval == config.GPS_BOOSTED_INTERVAL
    assert power.saved_interval == 30

    assert power.restore()
    assert host.interval == 30
    assert host.reloads == 2
    assert not power.boosted


def test_boost_and_restore_are_guarded():
    host = MemoryHostConfig()
    power = PowerCoordinator(host)

    assert power.boost()
    assert not power.boost()
    assert power.restore()
    assert not power.restore()
    assert host.history == [config.GPS_BOOSTED_INTERVAL, config.GPS_DEFAULT_INTERVAL]


def test_restore_before_boost_is_noop():
    host = MemoryHostConfig()
    assert not PowerCoordinator(host).restore()
    assert host.history == []


def test_recover_stuck_interval():
    host = MemoryHostConfig(interval=config.GPS_BOOSTED_INTERVAL)
    PowerCoordinator(host)

    assert host.interval == config.GPS_DEFAULT_INTERVAL
    assert host.reloads == 1


def test_no_recovery_for_normal_interval():
    host = MemoryHostConfig(interval=60)
    power = PowerCoordinator(host)

    assert not power.recover()
    assert host.history == []


def test_restore_never_leaves_boosted_interval():
    host = MemoryHostConfig()
    power = PowerCoordinator(host)
    host.interval = 1  # changed behind our back

    power.boost()
    power.restore()
    assert host.interval == config.GPS_DEFAULT_INTERVAL


def test_recovery_across_restart():
    store = MemoryStore()
    host = StoredHostConfig(store, config.GPS_DEFAULT_INTERVAL)
    PowerCoordinator(host).boost()
    # Power lost mid-session: nothing restored

    restarted = StoredHostConfig(store, config.GPS_DEFAULT_INTERVAL)
    assert restarted.get_sample_interval() == config.GPS_BOOSTED_INTERVAL

    seen = []
    restarted.on_reload(seen.append)
    PowerCoordinator(restarted)

    assert restarted.get_sample_interval() == config.GPS_DEFAULT_INTERVAL
    assert seen == [config.GPS_DEFAULT_INTERVAL]
