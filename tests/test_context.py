import asyncio

import pytest

from ask_steps.errors import CancellationError, DeadlineExceededError
from ask_steps.steps import StepContext, StepGroup


def test_background_context_is_live():
    ctx = StepContext.background()
    assert ctx.err() is None
    assert not ctx.cancelled
    assert ctx.deadline is None
    assert ctx.remaining() is None


def test_cancel_propagates_to_children_only():
    root = StepContext.background()
    child = root.with_cancel()
    grandchild = child.with_cancel()

    child.cancel(CancellationError("child stop"))

    assert root.err() is None
    assert str(child.err()) == "child stop"
    assert grandchild.err() is child.err()


def test_first_cause_wins():
    ctx = StepContext.background()
    ctx.cancel(CancellationError("first"))
    ctx.cancel(CancellationError("second"))
    assert str(ctx.err()) == "first"


def test_child_of_cancelled_parent_starts_cancelled():
    parent = StepContext.background()
    parent.cancel()
    assert parent.with_cancel().cancelled


def test_child_inherits_earlier_deadline():
    parent = StepContext.background().with_timeout(1)
    child = parent.with_timeout(100)
    assert child.deadline == parent.deadline


def test_deadline_expires():
    ctx = StepContext.background().with_timeout(0)
    assert isinstance(ctx.err(), DeadlineExceededError)


def test_child_reports_parent_deadline_error():
    parent = StepContext.background().with_timeout(0)
    child = parent.with_cancel()
    grandchild = child.with_timeout(100)
    assert grandchild.err() is parent.err()
    assert child.err() is parent.err()


def test_stricter_child_deadline_is_its_own():
    parent = StepContext.background().with_timeout(100)
    child = parent.with_timeout(0)
    assert isinstance(child.err(), DeadlineExceededError)
    assert parent.err() is None


def test_wait_for_returns_result():
    async def scenario():
        ctx = StepContext.background()
        return await ctx.wait_for(asyncio.sleep(0, result=42))

    assert asyncio.run(scenario()) == 42


def test_wait_for_raises_on_cancel():
    async def scenario():
        ctx = StepContext.background().with_cancel()
        asyncio.get_running_loop().call_later(0.01, ctx.cancel, CancellationError("stopped"))
        await ctx.wait_for(asyncio.Event().wait())

    with pytest.raises(CancellationError, match="stopped"):
        asyncio.run(scenario())


def test_wait_for_raises_on_deadline():
    async def scenario():
        ctx = StepContext.background().with_timeout(0.02)
        await ctx.wait_for(asyncio.sleep(10))

    with pytest.raises(DeadlineExceededError):
        asyncio.run(scenario())


def test_done_returns_cause():
    async def scenario():
        ctx = StepContext.background().with_cancel()
        asyncio.get_running_loop().call_soon(ctx.cancel, CancellationError("bye"))
        return await ctx.done()

    assert str(asyncio.run(scenario())) == "bye"


def test_group_waits_for_all_tasks():
    async def scenario():
        group = StepGroup(StepContext.background())
        seen = []

        async def work(ctx, value):
            await asyncio.sleep(0)
            seen.append(value)

        group.go(lambda ctx: work(ctx, 1))
        group.go(lambda ctx: work(ctx, 2))
        await group.wait()
        return seen, group.ctx.cancelled

    seen, cancelled = asyncio.run(scenario())
    assert sorted(seen) == [1, 2]
    # the group context is released once everything finished
    assert cancelled


def test_group_first_failure_cancels_others():
    async def scenario():
        parent = StepContext.background()
        group = StepGroup(parent)

        async def fail(ctx):
            raise ValueError("first failure")

        async def block(ctx):
            await ctx.wait_for(asyncio.Event().wait())

        group.go(block)
        group.go(fail)
        with pytest.raises(ValueError, match="first failure"):
            await group.wait()
        return parent

    parent = asyncio.run(scenario())
    assert parent.err() is None
