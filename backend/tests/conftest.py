import random

import pytest

from chronotune.config import Config
from chronotune.game.engine import GameEngine
from chronotune.game.models import Game, Player, Room, Song
from chronotune.server import create_app


MEDIA_ID = "abcdefghijk"


def make_song(sid, year, title=None, artists=None):
    title = title or f"Title {sid}"
    artists = tuple(artists or (f"Artist {sid}",))
    return Song(
        id=sid,
        title=title,
        year=year,
        artists=artists,
        search_query=f"{title} {' '.join(artists)}",
    )


def make_room(names, singleplayer=False, code="ABCD"):
    players = [Player(sid=f"sid-{n}", name=n) for n in names]
    return Room(
        code=code,
        host_sid=players[0].sid,
        players=players,
        game=Game(singleplayer=singleplayer),
    )


class FakeTask:
    def __init__(self, delay, fn, args):
        self.delay = delay
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fn(*self.args)


class FakeScheduler:
    def __init__(self):
        self.tasks = []

    def call_later(self, delay_sec, fn, *args):
        task = FakeTask(delay_sec, fn, args)
        self.tasks.append(task)
        return task

    def pending(self):
        return [t for t in self.tasks if not t.cancelled]

    def fire_pending(self):
        for task in self.pending():
            task.fire()


class FakeResolver:
    def __init__(self, media_id=MEDIA_ID):
        self.media_id = media_id
        self.queries = []

    def resolve(self, query):
        self.queries.append(query)
        return self.media_id


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish_state(self, room):
        self.events.append(("state", room.code))

    def play(self, room, media_id, start_at_ms):
        self.events.append(("play", media_id, start_at_ms))

    def stop(self, room):
        self.events.append(("stop",))

    def names(self):
        return [e[0] for e in self.events]


class FakeClock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def songs():
    return [make_song(f"s{i}", 1960 + i * 3) for i in range(12)]


@pytest.fixture()
def scheduler():
    return FakeScheduler()


@pytest.fixture()
def resolver():
    return FakeResolver()


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def engine(songs, resolver, publisher, scheduler, clock):
    return GameEngine(
        songs,
        resolver,
        publisher,
        scheduler,
        rng=random.Random(7),
        clock=clock,
    )


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SOCKETIO_ASYNC_MODE = "threading"
    TRUST_PROXY_HEADERS = False


@pytest.fixture()
def app_bundle(scheduler, resolver):
    app, socketio = create_app(
        TestConfig,
        resolver=resolver,
        scheduler=scheduler,
        rng=random.Random(3),
    )
    return app, socketio


@pytest.fixture()
def flask_app(app_bundle):
    return app_bundle[0]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(app_bundle):
    app, socketio = app_bundle
    clients = []

    def _make():
        c = socketio.test_client(app, flask_test_client=app.test_client())
        clients.append(c)
        return c

    yield _make

    for c in clients:
        if c.is_connected():
            c.disconnect()
