"""Tests for the channel and message stores and their JSON persistence."""

import asyncio
import json

import pytest

from crm_backend.exceptions import (
    ChannelNotFoundException,
    DuplicateChannelNameException,
    InvalidOperationException,
    PersistenceException,
)
from crm_backend.model.chat import BroadcastChannel, DirectChannel, Message
from crm_backend.repositories import ChannelStore, MessageStore
from crm_backend.repositories import channel_repo
from crm_backend.repositories.message_repo import message_file_name


def _message(channel_id, text="hello"):
    def build(sequence):
        return Message(id=sequence, chat_id=channel_id, sender="Tester", sender_id="u1", message=text)
    return build


@pytest.mark.unit
class TestChannelStore:

    @pytest.mark.asyncio
    async def test_creator_is_added_to_members(self, stores):
        channels, _ = stores
        channel = await channels.create_broadcast("design-team", ["u2", "u3"], "u1")

        assert isinstance(channel, BroadcastChannel)
        assert set(channel.members) == {"u1", "u2", "u3"}
        assert channel.locked is False

    @pytest.mark.asyncio
    async def test_duplicate_name_is_case_insensitive(self, stores):
        channels, _ = stores
        existing = await channels.create_broadcast("Sales", [], "u1")

        with pytest.raises(DuplicateChannelNameException) as exc_info:
            await channels.create_broadcast("sALES", [], "u1")

        assert exc_info.value.data["id"] == existing.id
        assert len(channels.list_all()) == 1

    @pytest.mark.asyncio
    async def test_direct_channel_is_order_free_and_idempotent(self, stores):
        channels, _ = stores
        first, created_first = await channels.get_or_create_direct("alice", "bob")
        second, created_second = await channels.get_or_create_direct("bob", "alice", "ignored")

        assert first.id == second.id
        assert created_first is True
        assert created_second is False
        assert first.name == "DM"
        assert len(channels.list_all()) == 1

    @pytest.mark.asyncio
    async def test_direct_channel_cannot_be_locked_or_renamed(self, stores):
        channels, _ = stores
        dm, _ = await channels.get_or_create_direct("alice", "bob")

        with pytest.raises(InvalidOperationException):
            await channels.set_lock(dm.id, True)
        with pytest.raises(InvalidOperationException):
            await channels.rename(dm.id, "secret")

    @pytest.mark.asyncio
    async def test_rename_rejects_name_of_other_channel(self, stores):
        channels, _ = stores
        await channels.create_broadcast("alpha", [], "u1")
        beta = await channels.create_broadcast("beta", [], "u1")

        with pytest.raises(DuplicateChannelNameException):
            await channels.rename(beta.id, "ALPHA")

        renamed = await channels.rename(beta.id, "Beta")
        assert renamed.name == "Beta"

    @pytest.mark.asyncio
    async def test_unknown_channel(self, stores):
        channels, _ = stores
        with pytest.raises(ChannelNotFoundException):
            await channels.set_lock("missing", True)

    @pytest.mark.asyncio
    async def test_noop_membership_change_does_not_write(self, stores, monkeypatch):
        channels, _ = stores
        channel = await channels.create_broadcast("ops", ["u2"], "u1")

        def fail(*args, **kwargs):
            raise AssertionError("unexpected write")

        monkeypatch.setattr(channel_repo, "write_json_atomic", fail)

        assert await channels.add_member(channel.id, "u2") is channel
        assert await channels.remove_member(channel.id, "u9") is channel

    @pytest.mark.asyncio
    async def test_visibility(self, stores):
        channels, _ = stores
        mine = await channels.create_broadcast("mine", ["u2"], "u1")
        await channels.create_broadcast("theirs", ["u3"], "u1")
        dm, _ = await channels.get_or_create_direct("u3", "u4")

        visible = {c.id for c in channels.visible_to("u2")}
        assert visible == {mine.id, dm.id}

    @pytest.mark.asyncio
    async def test_round_trip(self, stores, data_dir):
        channels, _ = stores
        team = await channels.create_broadcast("team", ["u2"], "u1")
        await channels.set_lock(team.id, True)
        await channels.record_message(team.id, "hi")
        await channels.get_or_create_direct("u1", "u2")

        reloaded = ChannelStore(data_dir)
        reloaded.load()

        assert {c.id: c for c in reloaded.list_all()} == {c.id: c for c in channels.list_all()}
        restored = reloaded.get(team.id)
        assert restored.locked is True
        assert restored.last_message == "hi"
        assert restored.unread == 1

    @pytest.mark.asyncio
    async def test_failed_write_leaves_memory_untouched(self, stores, monkeypatch):
        channels, _ = stores
        channel = await channels.create_broadcast("stable", ["u2"], "u1")

        def broken_write(path, data):
            raise PersistenceException()

        monkeypatch.setattr(channel_repo, "write_json_atomic", broken_write)

        with pytest.raises(PersistenceException):
            await channels.rename(channel.id, "renamed")

        assert channels.get(channel.id).name == "stable"

    def test_legacy_records_load(self, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "channels.json").write_text(json.dumps([
            {"id": "c1", "name": "general", "type": "channel", "locked": True, "members": ["u1"]},
            {"id": "dm-u1-u2", "name": "DM", "type": "dm", "members": ["u1", "u2"]},
        ]))

        store = ChannelStore(data_dir)
        assert store.load() == 2
        assert isinstance(store.get("c1"), BroadcastChannel)
        assert store.get("c1").locked is True
        assert isinstance(store.get("dm-u1-u2"), DirectChannel)

    def test_corrupt_file_raises(self, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "channels.json").write_text("{not json")

        with pytest.raises(PersistenceException):
            ChannelStore(data_dir).load()


@pytest.mark.unit
class TestMessageStore:

    @pytest.mark.asyncio
    async def test_sequential_posts_are_numbered_from_one(self, stores):
        _, messages = stores
        for i in range(5):
            await messages.append("c1", _message("c1", f"m{i}"))

        history = messages.messages_for("c1")
        assert [m.id for m in history] == [1, 2, 3, 4, 5]
        assert [m.message for m in history] == ["m0", "m1", "m2", "m3", "m4"]

    @pytest.mark.asyncio
    async def test_concurrent_posts_get_unique_sequence_numbers(self, stores):
        _, messages = stores
        await asyncio.gather(*(messages.append("c1", _message("c1")) for _ in range(20)))

        assert sorted(m.id for m in messages.messages_for("c1")) == list(range(1, 21))

    @pytest.mark.asyncio
    async def test_channels_are_numbered_independently(self, stores):
        _, messages = stores
        await messages.append("a", _message("a"))
        await messages.append("b", _message("b"))
        assert messages.messages_for("b")[0].id == 1

    @pytest.mark.asyncio
    async def test_round_trip_with_unsafe_channel_id(self, stores, data_dir):
        _, messages = stores
        channel_id = "dm-a/b-c"
        await messages.append(channel_id, _message(channel_id, "first"))

        assert (data_dir / "messages" / message_file_name(channel_id)).exists()

        reloaded = MessageStore(data_dir)
        assert reloaded.load() == 1
        assert reloaded.messages_for(channel_id) == messages.messages_for(channel_id)
