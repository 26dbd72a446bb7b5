"""Tests for the ambient TransactionContext."""

from __future__ import annotations

import asyncio

import pytest

from metaforge.infrastructure.transaction import (
    Propagation,
    TransactionContext,
    transaction_context,
)


class TestStack:
    def test_empty(self, context: TransactionContext) -> None:
        assert context.get_active() is None
        assert context.has_active() is False
        assert context.depth == 0

    def test_push_pop_lifo(self, context: TransactionContext) -> None:
        context.push("h1")
        context.push("h2")
        assert context.get_active() == "h2"
        assert context.pop() == "h2"
        assert context.get_active() == "h1"
        assert context.pop() == "h1"

    def test_pop_empty_is_none(self, context: TransactionContext) -> None:
        assert context.pop() is None
        assert context.get_active() is None

    def test_scope_restores_on_error(self, context: TransactionContext) -> None:
        with pytest.raises(RuntimeError):
            with context.scope("h1"):
                assert context.get_active() == "h1"
                raise RuntimeError("boom")
        assert context.has_active() is False

    def test_default_instance(self) -> None:
        assert isinstance(transaction_context, TransactionContext)


class TestRun:
    @pytest.mark.asyncio
    async def test_nested_scoping(self, context: TransactionContext) -> None:
        seen: list[object] = []

        async def inner() -> object:
            return context.get_active()

        async def outer() -> None:
            seen.append(await context.run("h2", inner))
            seen.append(context.get_active())

        await context.run("h1", outer)
        seen.append(context.get_active())
        assert seen == ["h2", "h1", None]

    @pytest.mark.asyncio
    async def test_nested_scoping_when_inner_throws(self, context: TransactionContext) -> None:
        async def failing() -> None:
            assert context.get_active() == "h2"
            raise ValueError("inner")

        async def outer() -> object:
            with pytest.raises(ValueError):
                await context.run("h2", failing)
            return context.get_active()

        assert await context.run("h1", outer) == "h1"
        assert context.get_active() is None

    @pytest.mark.asyncio
    async def test_sync_body(self, context: TransactionContext) -> None:
        assert await context.run("h", context.get_active) == "h"

    @pytest.mark.asyncio
    async def test_pops_on_cancellation(self, context: TransactionContext) -> None:
        started = asyncio.Event()

        async def body() -> None:
            started.set()
            await asyncio.sleep(60)

        after: list[object] = []

        async def task() -> None:
            try:
                await context.run("h", body)
            finally:
                after.append(context.get_active())

        t = asyncio.create_task(task())
        await started.wait()
        t.cancel()
        with pytest.raises(asyncio.CancelledError):
            await t
        assert after == [None]

    @pytest.mark.asyncio
    async def test_concurrent_tasks_are_isolated(self, context: TransactionContext) -> None:
        barrier = asyncio.Event()
        results: dict[str, object] = {}

        async def worker(name: str) -> None:
            async def body() -> None:
                await barrier.wait()
                results[name] = context.get_active()

            await context.run(name, body)

        tasks = [asyncio.create_task(worker(n)) for n in ("a", "b")]
        await asyncio.sleep(0)
        barrier.set()
        await asyncio.gather(*tasks)
        assert results == {"a": "a", "b": "b"}
        assert context.get_active() is None


class TestPropagation:
    def test_values(self) -> None:
        assert Propagation("requires_new") is Propagation.REQUIRES_NEW
        assert {p.value for p in Propagation} == {
            "required",
            "requires_new",
            "nested",
            "supports",
            "never",
        }
