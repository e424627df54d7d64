import asyncio
import itertools
import math

import pytest

from animation_clock import ManualClock
from layout_engine import LayoutEngine, LayoutParams, radius_bounds, radius_scale
from models import Node

STILL = LayoutParams(drift=False)


def make_node(node_id, hype):
    return Node(
        id=node_id, name=node_id, symbol=node_id.upper(), icon="", url="",
        hype=hype, price_change=0.0, price_change_h1=0.0, volume=0.0, txns=0,
        txns_h1=0, boost=0.0, liquidity=0.0, price_usd=0.0, market_cap=0.0,
    )


def make_nodes(count):
    return [make_node(f"n{i}", hype=(count - i) / count) for i in range(count)]


def other_tasks():
    current = asyncio.current_task()
    return [t for t in asyncio.all_tasks() if t is not current and not t.done()]


def test_radius_is_monotonic_and_non_negative():
    nodes = [make_node(f"n{i}", hype) for i, hype in enumerate([0.0, 0.05, 0.3, 0.31, 0.9, 1.4])]
    radius = radius_scale(nodes)
    radii = [radius(n.hype) for n in nodes]

    assert radii == sorted(radii)
    assert radii[0] == radius_bounds(len(nodes))[0]
    assert radii[0] >= 0
    assert radii[-1] == pytest.approx(radius_bounds(len(nodes))[1])


def test_radius_range_shrinks_with_node_count():
    small_min, small_max = radius_bounds(10)
    large_min, large_max = radius_bounds(300)

    assert large_min < small_min
    assert large_max < small_max
    assert large_min > 0


def test_all_zero_hype_gets_minimum_radius():
    nodes = [make_node("a", 0.0), make_node("b", 0.0)]
    radius = radius_scale(nodes)

    assert radius(0.0) == radius_bounds(2)[0]


def worst_overlap(engine):
    padding = engine.params.collision_padding
    worst = 0.0
    for a, b in itertools.combinations(engine.frame().nodes, 2):
        distance = math.hypot(a.x - b.x, a.y - b.y)
        worst = max(worst, a.radius + b.radius + padding - distance)
    return worst


def test_collision_free_after_settling():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    engine.start_generation(make_nodes(12), 1200, 601, autostart=False)

    for _ in range(800):
        engine.step()

    assert worst_overlap(engine) <= 0.5


@pytest.mark.parametrize("count", [50, 100, 300])
def test_dense_layouts_stay_collision_free_while_drifting(count):
    clock = ManualClock()
    engine = LayoutEngine(clock=clock)
    engine.start_generation(make_nodes(count), 1200, 601, autostart=False)

    for _ in range(1200):
        clock.advance(engine.params.frame_interval)
        engine.step()

    assert worst_overlap(engine) <= 0.5
    assert engine.overlap <= 0.5

    # The settled state holds: more steps do not let the pack creep into overlap
    for _ in range(300):
        clock.advance(engine.params.frame_interval)
        engine.step()
    assert worst_overlap(engine) <= 0.5


def test_radius_range_fits_the_viewport_area():
    area = 1200 * 601

    assert radius_bounds(100, area)[1] < radius_bounds(100)[1]
    assert radius_bounds(10, area) == radius_bounds(10)

    radius = radius_scale(make_nodes(100), area)
    covered = sum(math.pi * radius(n.hype) ** 2 for n in make_nodes(100))
    assert covered <= area * 0.6


def test_same_seed_gives_same_layout():
    positions = []
    for _ in range(2):
        engine = LayoutEngine(clock=ManualClock(), seed=3)
        engine.start_generation(make_nodes(8), 800, 500, autostart=False)
        for _ in range(50):
            engine.clock.advance(0.016)
            engine.step()
        positions.append([(f.x, f.y) for f in engine.frame().nodes])

    assert positions[0] == positions[1]


def test_energy_decays_to_floor_but_never_halts():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    engine.start_generation(make_nodes(3), 600, 420, autostart=False)

    for _ in range(3000):
        engine.step()

    floor = engine.params.energy_floor
    assert engine.energy == pytest.approx(floor)
    assert engine.energy > 0
    assert engine.step_count == 3000


def test_drift_moves_the_center_target():
    clock = ManualClock()
    engine = LayoutEngine(clock=clock)
    engine.start_generation(make_nodes(3), 1000, 500, autostart=False)

    first = engine.center_target()
    clock.advance(5.0)
    second = engine.center_target()

    assert first != second
    assert abs(second[0] - 500) <= 0.04 * 1000 + 1e-9
    assert abs(second[1] - 250) <= 0.04 * 500 + 1e-9


def test_pinned_node_stays_under_pointer_and_blocks_others():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    engine.start_generation(make_nodes(6), 900, 500, autostart=False)

    engine.pin("n0", 450, 250)
    for _ in range(400):
        engine.step()

    assert engine.position("n0") == (450, 250)
    pinned = engine.states["n0"]
    for node_id, state in engine.states.items():
        if node_id == "n0":
            continue
        distance = math.hypot(state.x - pinned.x, state.y - pinned.y)
        assert distance >= state.radius + pinned.radius + engine.params.collision_padding - 1.0


def test_release_reheats_the_simulation():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    engine.start_generation(make_nodes(4), 900, 500, autostart=False)
    for _ in range(1000):
        engine.step()

    engine.pin("n1", 100, 100)
    engine.release("n1")

    assert not engine.states["n1"].pinned
    assert engine.energy >= engine.params.release_energy


def test_retained_nodes_keep_position_across_generations():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    nodes = make_nodes(5)
    engine.start_generation(nodes, 900, 500, autostart=False)
    for _ in range(100):
        engine.step()
    before = engine.position("n2")

    newcomer = make_node("fresh", 0.5)
    engine.start_generation(nodes[1:] + [newcomer], 900, 500, autostart=False)

    assert engine.position("n2") == before
    assert engine.position("n0") is None
    assert engine.position("fresh") is not None
    assert engine.states["n2"].vx == 0.0
    assert engine.energy == 1.0


def test_resize_reseeds_every_node():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    nodes = make_nodes(5)
    engine.start_generation(nodes, 900, 500, autostart=False)
    for _ in range(100):
        engine.step()

    engine.start_generation(nodes, 1200, 601, autostart=False)

    x, y = engine.position("n0")
    assert math.hypot(x - 600, y - 300.5) < 20


def test_node_at_hits_bubble_interior_only():
    engine = LayoutEngine(clock=ManualClock(), params=STILL)
    engine.start_generation(make_nodes(3), 900, 500, autostart=False)
    for _ in range(300):
        engine.step()

    x, y = engine.position("n1")
    assert engine.node_at(x, y).id == "n1"
    assert engine.node_at(-5000, -5000) is None


def test_empty_generation_steps_without_error():
    engine = LayoutEngine(clock=ManualClock())
    engine.start_generation([], 900, 500, autostart=False)

    frame = engine.step()

    assert frame.nodes == ()


def test_new_generation_cancels_previous_integrator():
    async def scenario():
        engine = LayoutEngine(clock=ManualClock())
        engine.start_generation(make_nodes(4), 900, 500)
        first = engine._task
        for _ in range(5):
            await asyncio.sleep(0)
        assert engine.step_count > 0

        engine.start_generation(make_nodes(6), 900, 500)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert first.cancelled()
        assert len(other_tasks()) == 1

        engine.dispose()
        await asyncio.sleep(0)
        assert other_tasks() == []
        assert not engine.running

    asyncio.run(scenario())


def test_tick_listeners_receive_frames_until_unsubscribed():
    async def scenario():
        engine = LayoutEngine(clock=ManualClock())
        frames = []
        unsubscribe = engine.on_tick(frames.append)
        engine.start_generation(make_nodes(2), 900, 500)
        for _ in range(4):
            await asyncio.sleep(0)
        unsubscribe()
        seen = len(frames)
        for _ in range(4):
            await asyncio.sleep(0)
        engine.dispose()
        return frames, seen

    frames, seen = asyncio.run(scenario())

    assert seen > 0
    assert len(frames) == seen
    assert all(len(frame.nodes) == 2 for frame in frames)
    assert frames[0].generation == 1
