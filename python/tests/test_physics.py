from __future__ import annotations

import random

from conftest import FixedRandom

from flappy_ghost.config import GameConstants
from flappy_ghost.game.collision import check_boundary, detect_collision
from flappy_ghost.game.kinematics import Kinematics
from flappy_ghost.game.obstacles import ObstacleGenerator, prune
from flappy_ghost.game.types import Obstacle, PlayerBody


def make_body(c: GameConstants, y: float = 150.0, velocity: float = 0.0) -> PlayerBody:
    body = PlayerBody.spawn(c)
    body.y = y
    body.velocity = velocity
    return body


def test_velocity_accumulates_gravity_each_tick(c):
    body = make_body(c, velocity=-3.0)
    kin = Kinematics.for_body(body, c)
    previous = body.velocity
    for _ in range(50):
        kin.tick()
        assert body.velocity == previous + c.gravity
        previous = body.velocity


def test_tick_moves_by_post_gravity_velocity(c):
    body = make_body(c, y=100.0, velocity=1.0)
    Kinematics.for_body(body, c).tick()
    assert body.velocity == 1.25
    assert body.y == 101.25


def test_multi_tick_equals_repeated_single_ticks(c):
    a = make_body(c)
    b = make_body(c)
    Kinematics.for_body(a, c).tick(5)
    kb = Kinematics.for_body(b, c)
    for _ in range(5):
        kb.tick()
    assert (a.y, a.velocity) == (b.y, b.velocity)


def test_jump_overwrites_velocity(c):
    for prior in (-12.0, -5.0, 0.0, 3.5, 40.0):
        body = make_body(c, velocity=prior)
        Kinematics.for_body(body, c).jump()
        assert body.velocity == c.lift_impulse


def test_single_jump_reverses_descent_within_a_few_ticks(c):
    body = make_body(c, velocity=6.0)
    kin = Kinematics.for_body(body, c)
    kin.jump()
    start_y = body.y
    kin.tick(3)
    assert body.y < start_y


def test_generator_spawns_on_interval_only(c):
    gen = ObstacleGenerator(c, random.Random(3))
    for _ in range(c.spawn_interval_ticks - 1):
        assert gen.maybe_spawn(10.0) is None
    obstacle = gen.maybe_spawn(42.0)
    assert obstacle is not None
    assert obstacle.world_x == 42.0 + c.viewport_width
    assert obstacle.passed is False


def test_generator_gap_stays_within_margins(c):
    gen = ObstacleGenerator(c, random.Random(1234))
    lo = c.margin_top
    hi = c.world_height - c.gap_size - c.margin_bottom
    stream = gen.stream(lambda: 0.0)
    for _ in range(500):
        obstacle = next(stream)
        assert lo <= obstacle.gap_center_y <= hi


def test_seeded_generators_agree(c):
    a = ObstacleGenerator(c, random.Random(99))
    b = ObstacleGenerator(c, random.Random(99))
    sa, sb = a.stream(lambda: 0.0), b.stream(lambda: 0.0)
    assert [next(sa).gap_center_y for _ in range(10)] == [next(sb).gap_center_y for _ in range(10)]


def test_stream_is_lazy(c):
    gen = ObstacleGenerator(c, FixedRandom(100.0))
    stream = gen.stream(lambda: 10.0)
    assert gen.frame == 0
    first = next(stream)
    assert gen.frame == c.spawn_interval_ticks
    assert first.world_x == 10.0 + c.viewport_width
    assert first.gap_center_y == 100.0


def test_reset_restarts_cadence(c):
    gen = ObstacleGenerator(c, FixedRandom(100.0))
    for _ in range(50):
        gen.maybe_spawn(0.0)
    gen.reset()
    spawned = [gen.maybe_spawn(0.0) for _ in range(c.spawn_interval_ticks)]
    assert spawned[-1] is not None
    assert all(o is None for o in spawned[:-1])


def test_prune_drops_obstacles_whose_trailing_edge_left_the_screen(c):
    obstacles = [Obstacle(world_x=0.0, gap_center_y=100.0), Obstacle(world_x=200.0, gap_center_y=100.0)]
    assert len(prune(obstacles, 51.0, c.obstacle_width)) == 2
    kept = prune(obstacles, 52.0, c.obstacle_width)
    assert [o.world_x for o in kept] == [200.0]


def test_lower_boundary_detected_only_past_world_height(c):
    assert not check_boundary(make_body(c, y=c.world_height - c.player_height), c.world_height).collided
    result = check_boundary(make_body(c, y=c.world_height - c.player_height + 0.01), c.world_height)
    assert result.kind == "boundary_bottom"
    assert result.is_boundary


def test_top_boundary_uses_post_integration_position(c):
    body = make_body(c, y=0.0, velocity=-1.0)
    assert not detect_collision(body, [], 0.0, c).collided

    Kinematics.for_body(body, c).tick()
    assert body.y < 0
    result = detect_collision(body, [], 0.0, c)
    assert result.collided
    assert result.kind == "boundary_top"
    assert result.is_boundary


def test_obstacle_collision_cases(c):
    # gap spans y in [100, 250]; obstacle overlaps the player's x span
    obstacle = Obstacle(world_x=60.0, gap_center_y=100.0)

    through = detect_collision(make_body(c, y=150.0), [obstacle], 0.0, c)
    assert not through.collided

    above = detect_collision(make_body(c, y=90.0), [obstacle], 0.0, c)
    assert above.kind == "obstacle"
    assert above.obstacle is obstacle

    below = detect_collision(make_body(c, y=240.0), [obstacle], 0.0, c)
    assert below.kind == "obstacle"


def test_no_obstacle_collision_without_x_overlap(c):
    far = Obstacle(world_x=200.0, gap_center_y=100.0)
    assert not detect_collision(make_body(c, y=10.0), [far], 0.0, c).collided

    # touching edges do not overlap
    touching = Obstacle(world_x=c.player_x + c.player_width, gap_center_y=100.0)
    assert not detect_collision(make_body(c, y=10.0), [touching], 0.0, c).collided


def test_world_offset_converts_to_screen_space(c):
    obstacle = Obstacle(world_x=1060.0, gap_center_y=100.0)
    assert not detect_collision(make_body(c, y=10.0), [obstacle], 0.0, c).collided
    assert detect_collision(make_body(c, y=10.0), [obstacle], 1000.0, c).kind == "obstacle"


def test_boundary_is_checked_before_obstacles(c):
    obstacle = Obstacle(world_x=60.0, gap_center_y=100.0)
    result = detect_collision(make_body(c, y=-1.0), [obstacle], 0.0, c)
    assert result.kind == "boundary_top"
    assert result.obstacle is None
