import asyncio

import pytest
from _helpers import FakeSession

from wst.sessions import HostSession, StatsSession, enabled_for_session


@pytest.mark.parametrize(
    "index, value, expected",
    [
        (3, True, True),
        (3, "true", True),
        (3, False, False),
        (3, None, False),
        (3, "false", False),
        (3, 3, True),
        (2, 3, False),
        (0, 0, True),
        (2, "1-3", True),
        (4, "1-3", False),
        (0, "1-", False),
        (9, "1-", True),
        (5, "-5", True),
        (6, "-5", False),
        (2, "0,2,4", True),
        (3, "0,2,4", False),
    ],
)
def test_enabled_for_session(index, value, expected):
    assert enabled_for_session(index, value) is expected


def test_fake_session_satisfies_protocol():
    assert isinstance(FakeSession(0), StatsSession)


def test_host_session_reports_usage():
    session = HostSession(7, url="local")
    assert isinstance(session, StatsSession)
    stats = asyncio.run(session.update_stats())
    assert set(stats) == {"nodeCpu", "nodeMemory", "usedCpu", "usedMemory"}
    assert stats["nodeMemory"] > 0
    asyncio.run(session.stop())
    assert asyncio.run(session.update_stats()) == {}
