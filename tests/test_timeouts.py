"""Tests for timeout replication."""

from datetime import timedelta

from modsync.constants import MAX_TIMEOUT_DURATION
from modsync.sync.events import MemberUpdated

USER = 4242


def _canonical_timeout(user_id, expiry):
    def mutate(snap):
        snap.timeouts[user_id] = expiry

    return mutate


class TestTimeoutPropagation:
    async def test_timeout_spreads_as_remaining_duration(self, engine, servers, clock):
        s1, s2, s3 = servers
        expiry = clock() + timedelta(hours=1)
        s1.members[USER].timeout_until = expiry

        await engine.dispatcher.dispatch(MemberUpdated(guild_id=1, user_id=USER, old_timeout=None, new_timeout=expiry))

        assert s2.mutations("set_timeout") == [("set_timeout", USER, timedelta(hours=1))]
        assert s3.members[USER].timeout_until == expiry
        assert s1.mutations("set_timeout") == []
        assert engine.state.snapshot.timeouts[USER] == expiry

    async def test_drift_within_tolerance_is_not_a_change(self, engine, servers, clock):
        expiry = clock() + timedelta(hours=1)
        await engine.dispatcher.dispatch(MemberUpdated(guild_id=1, user_id=USER, new_timeout=expiry))
        calls = [list(s.calls) for s in servers]

        drifted = expiry + timedelta(seconds=2)
        await engine.dispatcher.dispatch(MemberUpdated(guild_id=2, user_id=USER, old_timeout=None, new_timeout=drifted))

        assert [s.calls for s in servers] == calls
        assert engine.state.snapshot.timeouts[USER] == expiry

    async def test_past_expiry_counts_as_no_timeout(self, engine, servers, clock):
        past = clock() - timedelta(seconds=1)

        await engine.dispatcher.dispatch(MemberUpdated(guild_id=1, user_id=USER, old_timeout=None, new_timeout=past))

        assert all(s.calls == [] for s in servers)
        assert USER not in engine.state.snapshot.timeouts

    async def test_clearing_spreads(self, engine, servers, clock):
        expiry = clock() + timedelta(minutes=30)
        await engine.state.commit(_canonical_timeout(USER, expiry))
        for server in servers:
            server.members[USER].timeout_until = expiry
        servers[0].members[USER].timeout_until = None

        await engine.dispatcher.dispatch(MemberUpdated(guild_id=1, user_id=USER, old_timeout=expiry, new_timeout=None))

        assert all(s.members[USER].timeout_until is None for s in servers)
        assert servers[1].mutations("set_timeout") == [("set_timeout", USER, None)]
        assert USER not in engine.state.snapshot.timeouts

    async def test_duration_is_capped(self, engine, servers, clock):
        expiry = clock() + timedelta(days=40)

        await engine.timeouts.sync_timeout(USER, expiry, source_guild_id=1)

        assert servers[1].mutations("set_timeout") == [("set_timeout", USER, MAX_TIMEOUT_DURATION)]

    async def test_absent_member_is_skipped(self, engine, servers, clock):
        del servers[2].members[USER]
        expiry = clock() + timedelta(hours=1)

        changed = await engine.timeouts.sync_timeout(USER, expiry, source_guild_id=1)

        assert changed == [servers[1]]
        assert servers[2].calls == []


class TestTimeoutIdempotence:
    async def test_repeated_sync_makes_no_further_calls(self, engine, servers, clock):
        expiry = clock() + timedelta(hours=1)
        servers[0].members[USER].timeout_until = expiry
        await engine.timeouts.sync_timeout(USER, expiry, source_guild_id=1)
        calls = [list(s.calls) for s in servers]

        changed = await engine.timeouts.sync_timeout(USER, expiry, source_guild_id=1)
        await engine.timeouts.sync_timeout(USER, expiry)

        assert changed == []
        assert [s.calls for s in servers] == calls
        assert engine.state.snapshot.timeouts[USER] == expiry


class TestTimeoutExpiry:
    async def test_expired_timeout_is_cleared_by_reconciliation(self, engine, servers, clock):
        s1 = servers[0]
        expiry = clock() + timedelta(minutes=10)
        await engine.state.commit(_canonical_timeout(USER, expiry))
        s1.members[USER].timeout_until = expiry

        clock.advance(minutes=10, seconds=1)
        report = await engine.reconciler.run_pass()

        assert USER not in engine.state.snapshot.timeouts
        assert s1.members[USER].timeout_until is None
        assert s1.mutations("set_timeout") == [("set_timeout", USER, None)]
        assert report.expired_timeouts == 1


class TestTimeoutEchoSuppression:
    async def test_self_caused_member_updates_are_discarded(self, echo, servers, clock):
        engine = echo
        expiry = clock() + timedelta(hours=1)

        await engine.timeouts.sync_timeout(USER, expiry, source_guild_id=1)

        assert engine.stats.events_discarded == 2
        assert engine.dispatcher.size() == 0
