"""Admin dashboard view shared by the REST endpoint and the admin socket"""

import asyncio

from realtime.broadcaster import ADMINS


def _test_dict(test):
    return test.to_dict() if test else None


async def build_dashboard(context) -> dict:
    active, ready, latest = await asyncio.gather(
        context.lifecycle.get_active_test(),
        context.lifecycle.get_ready_test(),
        context.lifecycle.get_latest_test(),
    )
    return {
        "activeTest": _test_dict(active),
        "readyTest": _test_dict(ready),
        "latestTest": _test_dict(latest),
        "connectedUsers": context.registry.connected_count,
        "usersList": context.registry.roster_entries(),
    }


def admin_status_payload(dashboard: dict) -> dict:
    return {
        "activeTest": dashboard["activeTest"],
        "readyTest": dashboard["readyTest"],
        "latestTest": dashboard["latestTest"],
        "userCount": dashboard["connectedUsers"],
        "users": dashboard["usersList"],
    }


async def push_admin_status(context):
    """Refresh every admin observer after an admin action changed test state."""
    dashboard = await build_dashboard(context)
    await context.broadcaster.broadcast("admin-status", admin_status_payload(dashboard), audience=ADMINS)
