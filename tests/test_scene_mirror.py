"""
Tests for SceneMirror: versioned publish, compare-and-swap against stale
aggregations, and publish listeners.
"""

import pytest

from scene_relay.core.errors import StaleAggregation
from scene_relay.device.base import SceneRef
from scene_relay.models.scene import SceneSnapshot, SceneView
from scene_relay.state.scene_mirror import SceneMirror


def _snapshot(*names: str) -> SceneSnapshot:
    refs = tuple(SceneRef(id=f"id-{n}", index=i) for i, n in enumerate(names))
    views = tuple(
        SceneView(id=r.id, name=n, color="#000000", index=r.index) for r, n in zip(refs, names)
    )
    return SceneSnapshot(scenes=views, refs=refs)


def test_starts_empty_at_version_zero():
    mirror = SceneMirror()
    snapshot, version = mirror.current()

    assert version == 0
    assert len(snapshot) == 0


def test_publish_replaces_snapshot_and_bumps_version():
    mirror = SceneMirror()
    first = _snapshot("Intro")
    second = _snapshot("Intro", "Verse")

    assert mirror.publish(first) == 1
    assert mirror.publish(second) == 2

    snapshot, version = mirror.current()
    assert snapshot is second
    assert version == 2


def test_stale_publish_is_discarded():
    mirror = SceneMirror()
    mirror.publish(_snapshot("A"))
    newer = _snapshot("A", "B")
    mirror.publish(newer, based_on=1)

    with pytest.raises(StaleAggregation) as exc:
        mirror.publish(_snapshot("old"), based_on=1)
    assert (exc.value.based_on, exc.value.current) == (1, 2)

    snapshot, version = mirror.current()
    assert snapshot is newer
    assert version == 2
    assert mirror.stale_discards == 1


def test_out_of_order_completion_never_goes_backwards():
    mirror = SceneMirror()
    mirror.publish(_snapshot("v1"))

    # two refreshes: X started at v1, Y started after a publish at v2
    x_base = mirror.version
    mirror.publish(_snapshot("v2"))
    y_base = mirror.version

    assert mirror.publish(_snapshot("from-y"), based_on=y_base) == 3
    with pytest.raises(StaleAggregation):
        mirror.publish(_snapshot("from-x"), based_on=x_base)

    assert mirror.version == 3
    assert mirror.snapshot.scenes[0].name == "from-y"


def test_listeners_get_each_publish_and_failures_are_isolated():
    mirror = SceneMirror()
    seen = []

    def broken(snapshot, version):
        raise RuntimeError("boom")

    mirror.add_listener(broken)
    mirror.add_listener(lambda snapshot, version: seen.append((len(snapshot), version)))

    mirror.publish(_snapshot("A"))
    mirror.publish(_snapshot("A", "B"))
    with pytest.raises(StaleAggregation):
        mirror.publish(_snapshot("stale"), based_on=0)

    assert seen == [(1, 1), (2, 2)]


def test_removed_listener_is_not_called():
    mirror = SceneMirror()
    seen = []

    def listener(snapshot, version):
        seen.append(version)

    mirror.add_listener(listener)
    mirror.publish(_snapshot("A"))
    mirror.remove_listener(listener)
    mirror.publish(_snapshot("B"))

    assert seen == [1]


def test_snapshot_requires_aligned_refs():
    with pytest.raises(ValueError):
        SceneSnapshot(scenes=_snapshot("A").scenes, refs=())
