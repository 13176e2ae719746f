"""Tests for the periodic reconciliation pass."""

import asyncio
from datetime import timedelta

from modsync.models import MuteState
from modsync.sync.events import ServerJoined
from modsync.testing.fakes import FakeServer

USER = 4242
MUTED = "Muted"


def _commit(**sections):
    def mutate(snap):
        for name, values in sections.items():
            getattr(snap, name).update(values)

    return mutate


def _give_role(server, user_id=USER):
    role = server.role_named(MUTED) or server.make_role(MUTED)
    server.members[user_id].roles.add(role)
    return role


class TestBanReconciliation:
    async def test_unknown_ban_is_discovered_and_spread(self, engine, servers):
        s1, s2, s3 = servers
        s2.bans.add(7)

        report = await engine.reconciler.run_pass()

        assert engine.state.snapshot.is_banned(7)
        assert 7 in s1.bans and 7 in s3.bans
        assert s2.mutations("add_ban") == []
        assert report.bans_discovered == 1
        assert report.bans_corrected == 0

    async def test_missing_canonical_ban_is_restored(self, engine, servers):
        s1, s2, s3 = servers
        await engine.state.commit(_commit(bans={8: True}))
        s1.bans.add(8)
        s2.bans.add(8)

        report = await engine.reconciler.run_pass()

        assert s3.mutations("add_ban") == [("add_ban", 8)]
        assert report.bans_corrected == 1

    async def test_unreachable_server_is_skipped(self, engine, servers, reporter):
        s1, s2, s3 = servers
        await engine.state.commit(_commit(bans={8: True}))
        s2.failing.update({"list_bans", "list_members"})

        report = await engine.reconciler.run_pass()

        assert 8 in s1.bans and 8 in s3.bans
        assert 8 not in s2.bans
        assert report.servers_failed == [2]
        assert report.servers_scanned == 2
        assert "failed" in reporter.messages[-1]

    async def test_clean_pass_reports_nothing(self, engine, reporter):
        report = await engine.reconciler.run_pass()

        assert report.changes() == 0
        assert reporter.messages == []
        assert engine.stats.passes_completed == 1
        assert engine.reconciler.last_report is report


class TestTimeoutReconciliation:
    async def test_unknown_timeout_is_discovered(self, engine, servers, clock):
        s1, s2, s3 = servers
        expiry = clock() + timedelta(minutes=10)
        s3.members[USER].timeout_until = expiry

        report = await engine.reconciler.run_pass()

        assert engine.state.snapshot.timeouts[USER] == expiry
        assert s1.members[USER].timeout_until == expiry
        assert s2.members[USER].timeout_until == expiry
        assert report.timeouts_synced == 1

    async def test_lift_missed_while_offline_is_adopted(self, engine, servers, clock):
        s1, s2, s3 = servers
        expiry = clock() + timedelta(hours=1)
        await engine.state.commit(_commit(timeouts={USER: expiry}))
        s1.members[USER].timeout_until = expiry
        s3.members[USER].timeout_until = expiry

        report = await engine.reconciler.run_pass()

        assert USER not in engine.state.snapshot.timeouts
        assert s1.mutations("set_timeout") == [("set_timeout", USER, None)]
        assert s3.members[USER].timeout_until is None
        assert s2.calls == []
        assert report.timeouts_synced == 1

    async def test_extension_missed_while_offline_is_adopted(self, engine, servers, clock):
        s1, s2, s3 = servers
        first = clock() + timedelta(hours=1)
        extended = clock() + timedelta(hours=3)
        await engine.state.commit(_commit(timeouts={USER: first}))
        for server in servers:
            server.members[USER].timeout_until = first
        s1.members[USER].timeout_until = extended

        report = await engine.reconciler.run_pass()

        assert engine.state.snapshot.timeouts[USER] == extended
        assert s2.mutations("set_timeout") == [("set_timeout", USER, timedelta(hours=3))]
        assert s3.members[USER].timeout_until == extended
        assert s1.calls == []
        assert report.timeouts_synced == 1


class TestMuteReconciliation:
    async def test_unknown_mute_makes_scanning_server_origin(self, engine, servers):
        s1, s2, s3 = servers
        _give_role(s2)

        report = await engine.reconciler.run_pass()

        assert engine.state.snapshot.mutes[USER] == MuteState(muted=True, origin_guild_id=2)
        assert s1.has_role_named(USER, MUTED) and s3.has_role_named(USER, MUTED)
        assert report.mutes_synced == 1

    async def test_non_origin_mismatch_is_corrected_in_place(self, engine, servers):
        s1, s2, s3 = servers
        await engine.state.commit(_commit(mutes={USER: MuteState(True, 1)}))
        _give_role(s1)
        _give_role(s2)
        s3.make_role(MUTED)

        report = await engine.reconciler.run_pass()

        assert s3.has_role_named(USER, MUTED)
        assert engine.state.snapshot.mutes[USER] == MuteState(True, 1)
        assert report.mutes_corrected == 1
        assert report.mutes_synced == 0

    async def test_origin_mismatch_updates_canonical(self, engine, servers):
        s1, s2, s3 = servers
        await engine.state.commit(_commit(mutes={USER: MuteState(True, 1)}))
        s1.make_role(MUTED)
        _give_role(s2)
        _give_role(s3)

        report = await engine.reconciler.run_pass()

        assert engine.state.snapshot.mutes[USER] == MuteState(False, 1)
        assert not s2.has_role_named(USER, MUTED)
        assert not s3.has_role_named(USER, MUTED)
        assert report.mutes_synced == 1


class TestCatchUp:
    async def test_joined_server_receives_canonical_state(self, engine, directory, clock, reporter):
        expiry = clock() + timedelta(hours=2)
        await engine.state.commit(
            _commit(bans={5: True}, timeouts={USER: expiry}, mutes={USER: MuteState(True, 1)})
        )
        s4 = directory.add(FakeServer(4, "delta", clock=clock))
        s4.add_member(USER)

        await engine.dispatcher.dispatch(ServerJoined(guild_id=4))

        assert s4.primed
        assert 5 in s4.bans
        assert s4.members[USER].timeout_until == expiry
        assert s4.has_role_named(USER, MUTED)
        assert "delta" in reporter.messages[-1]

    async def test_catch_up_skips_unmuted_records(self, engine, directory, clock):
        await engine.state.commit(_commit(mutes={USER: MuteState(False, 1)}))
        s4 = directory.add(FakeServer(4, "delta", clock=clock))
        s4.add_member(USER)

        changes = await engine.reconciler.catch_up(s4)

        assert changes == 0
        assert s4.calls == []

    async def test_unknown_joined_server_is_ignored(self, engine):
        await engine.dispatcher.dispatch(ServerJoined(guild_id=404))


class TestScheduler:
    async def test_runs_passes_until_stopped(self, engine):
        engine.reconciler.interval = 0.01
        engine.reconciler.start()
        await asyncio.sleep(0.1)
        await engine.reconciler.stop()

        assert engine.stats.passes_completed >= 1
        assert not engine.reconciler.running


class TestConvergence:
    """After local changes on different servers, one pass leaves every server matching canonical state."""

    def _assert_converged(self, engine, servers):
        snap = engine.state.snapshot
        banned = {uid for uid, b in snap.bans.items() if b}
        for server in servers:
            assert server.bans == banned, server
            for user_id, member in server.members.items():
                assert member.timeout_until == snap.timeouts.get(user_id), server
                record = snap.mutes.get(user_id)
                assert server.has_role_named(user_id, MUTED) == bool(record and record.muted), server

    async def test_mixed_local_changes_converge(self, engine, servers, clock):
        s1, s2, s3 = servers
        other = 5151
        for server in servers:
            server.add_member(other)
        expiry = clock() + timedelta(hours=1)
        s1.bans.add(7)
        s2.members[USER].timeout_until = expiry
        _give_role(s3)
        _give_role(s1, user_id=other)

        report = await engine.reconciler.run_pass()

        snap = engine.state.snapshot
        assert snap.bans == {7: True}
        assert snap.timeouts == {USER: expiry}
        assert snap.mutes == {USER: MuteState(True, 3), other: MuteState(True, 1)}
        self._assert_converged(engine, servers)
        assert report.servers_failed == []

        second = await engine.reconciler.run_pass()
        assert second.changes() == 0
        self._assert_converged(engine, servers)
