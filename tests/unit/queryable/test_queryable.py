"""Tests for the Queryable request lifecycle."""

import asyncio

import httpx
import pytest

from queryflow.exceptions import UnhandledErrorEvent
from queryflow.infrastructure.logging import request_id_var
from queryflow.queryable import Queryable, combine
from queryflow.timeline import LogLevel, ObserverOwnership

ROOT = "https://graph.microsoft.com/v1.0"


def lifecycle_recorder(calls: list, response: httpx.Response | None = None):
    """Behavior that records every moment and answers send with ``response``."""

    def pre(tl, url, init, result):
        calls.append("pre")
        return url, init, result

    def auth(tl, url, init):
        calls.append("auth")
        init["headers"]["Authorization"] = "Bearer token"
        return url, init

    async def send(tl, url, init):
        calls.append(("send", url, init["method"], init["headers"].get("Authorization")))
        return response or httpx.Response(200, json={"value": 1})

    def parse(tl, url, response, result):
        calls.append("parse")
        return url, response, response.json()

    def post(tl, url, result):
        calls.append("post")
        return url, {**result, "posted": True}

    def data(tl, result):
        calls.append(("data", result))

    def behavior(instance):
        instance.on("pre")(pre)
        instance.on("auth")(auth)
        instance.on("send")(send)
        instance.on("parse")(parse)
        instance.on("post")(post)
        instance.on("data")(data)
        return instance

    return behavior


class TestUrls:
    """Test url construction."""

    def test_combine(self):
        assert combine(ROOT, "users") == f"{ROOT}/users"
        assert combine(f"{ROOT}/", "/users/", "me") == f"{ROOT}/users/me"
        assert combine(ROOT, None, "") == ROOT

    def test_child_extends_parent_url(self):
        parent = Queryable(ROOT, "users")
        child = Queryable(parent, "abc")

        assert parent.to_url() == f"{ROOT}/users"
        assert child.url == f"{ROOT}/users/abc"
        assert Queryable(parent).url == parent.url


class TestObserverSharing:
    """Test that child queryables share observers until they diverge."""

    def test_child_inherits_parent_observers(self):
        parent = Queryable(ROOT)
        parent.on("data")(lambda tl, result: None)
        child = Queryable(parent, "me")

        assert child.ownership is ObserverOwnership.INHERITING
        assert child.list_observers("data") == parent.list_observers("data")

    def test_child_changes_stay_local(self):
        parent = Queryable(ROOT)
        child = Queryable(parent, "me")

        child.on("data")(lambda tl, result: None)

        assert parent.list_observers("data") == []
        assert child.ownership is ObserverOwnership.OWNING


class TestExecute:
    """Test the execute lifecycle."""

    @pytest.mark.asyncio
    async def test_runs_moments_in_order(self):
        """pre, auth, send, parse, post then data."""
        calls = []
        query = Queryable(ROOT, "me").using(lifecycle_recorder(calls))

        result = await query.execute()

        assert result == {"value": 1, "posted": True}
        assert calls == [
            "pre",
            "auth",
            ("send", f"{ROOT}/me", "GET", "Bearer token"),
            "parse",
            "post",
            ("data", {"value": 1, "posted": True}),
        ]

    @pytest.mark.asyncio
    async def test_execute_returns_scheduled_task(self):
        """The lifecycle starts on the loop rather than inline."""
        calls = []
        query = Queryable(ROOT).using(lifecycle_recorder(calls))

        task = query.execute({"method": "DELETE"})

        assert isinstance(task, asyncio.Task)
        assert calls == []
        await task
        assert calls[2][2] == "DELETE"

    @pytest.mark.asyncio
    async def test_pre_result_short_circuits(self):
        """A value produced by pre skips send and goes straight to data."""
        calls = []
        query = Queryable(ROOT).using(lifecycle_recorder(calls))
        query.on("pre")(lambda tl, url, init, result: (url, init, {"cached": True}))

        result = await query.execute()

        assert result == {"cached": True}
        assert calls == ["pre", ("data", {"cached": True})]

    @pytest.mark.asyncio
    async def test_caller_headers_not_mutated(self):
        headers = {"X-Caller": "1"}
        query = Queryable(ROOT).using(lifecycle_recorder([]))

        await query.execute({"headers": headers})

        assert headers == {"X-Caller": "1"}

    @pytest.mark.asyncio
    async def test_failure_emits_error_and_raises(self):
        """Lifecycle failures reach error observers and the caller."""
        errors = []
        query = Queryable(ROOT)

        async def send(tl, url, init):
            raise httpx.ConnectError("offline")

        query.on("send")(send)
        query.on("error")(lambda tl, err: errors.append(err))

        with pytest.raises(httpx.ConnectError):
            await query.execute()

        assert len(errors) == 1
        assert isinstance(errors[0], httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_failing_data_observer_without_error_observers(self):
        query = Queryable(ROOT).using(lifecycle_recorder([]))

        def bad_data(tl, result):
            raise KeyError("value")

        query.on("data")(bad_data)

        with pytest.raises(UnhandledErrorEvent) as exc_info:
            await query.execute()

        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_log_messages_carry_request_id(self):
        messages = []
        seen_ids = []
        query = Queryable(ROOT).using(lifecycle_recorder([]))
        query.on("log")(lambda tl, message, level: messages.append((message, level)))

        async def send(tl, url, init):
            seen_ids.append(request_id_var.get())
            return httpx.Response(200, json={})

        query.on("send").replace(send)
        await query.execute()

        request_id = seen_ids[0]
        assert request_id
        assert all(message.startswith(f"[id:{request_id}]") for message, _ in messages)
        assert (f"[id:{request_id}] Url: {ROOT}", LogLevel.INFO) in messages
        assert request_id_var.get() is None


class TestExecuteCallbacks:
    """Test callbacks run when execute starts a lifecycle task."""

    @pytest.mark.asyncio
    async def test_callback_receives_each_task(self):
        seen = []
        query = Queryable(ROOT).using(lifecycle_recorder([]))
        query.add_execute_callback(seen.append)

        first = query.execute()
        second = query.execute()
        await asyncio.gather(first, second)

        assert seen == [first, second]

    @pytest.mark.asyncio
    async def test_children_do_not_inherit_callbacks(self):
        seen = []
        parent = Queryable(ROOT).using(lifecycle_recorder([]))
        parent.add_execute_callback(seen.append)

        await Queryable(parent, "me").execute()

        assert seen == []
