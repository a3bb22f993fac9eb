import asyncio

from wst.stats.snapshot import CollectedStats, CollectedStatsConfig, MetricSnapshot


class FakeSession:
    """Minimal session returning canned stats (optionally slow or failing)."""

    def __init__(self, session_id, stats=None, *, delay=0.0, error=None, url="http://example.test/room", page_count=1):
        self.id = session_id
        self.url = url
        self.url_query = ""
        self.page_count = page_count
        self.stats = stats or {}
        self.delay = delay
        self.error = error
        self.calls = 0
        self.stopped = False

    async def update_stats(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.stats

    async def stop(self):
        self.stopped = True


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def collected(values=(), by_host=None, by_codec=None, participants=None):
    c = CollectedStats()
    c.all.push(list(values))
    for host, vals in (by_host or {}).items():
        c.host(host).push(list(vals))
    for codec, vals in (by_codec or {}).items():
        c.codec(codec).push(list(vals))
    c.by_participant_and_track.update(participants or {})
    return c


def snapshot(stats, timestamp=1700000000.0, url="http://example.test", pages=1):
    return MetricSnapshot.freeze(timestamp, stats, CollectedStatsConfig(url, pages, timestamp - 60))
