import math
import random

import pytest

from matchclient.simulation import (
    FIELD_HEIGHT, LEFT, PADDLE_HEIGHT, RIGHT, SERVE_DELAY_FRAMES, WINNING_SCORE,
    PongSimulation, SimulationLoop, base_speed, speedup,
)


@pytest.mark.parametrize('difficulty', [1, 5, 10])
def test_serve_speed_scales_with_difficulty(difficulty):
    sim = PongSimulation(difficulty, random.Random(difficulty))
    ball = sim.ball
    assert ball['x'] == 400 and ball['y'] == 300
    assert ball['speed'] == base_speed(difficulty)
    assert math.hypot(ball['dx'], ball['dy']) == pytest.approx(base_speed(difficulty))
    # Serves leave the centre within 30 degrees of horizontal
    assert abs(math.atan2(ball['dy'], ball['dx'])) <= math.pi / 6 + 1e-9


def test_difficulty_curves():
    assert base_speed(1) == 2.5
    assert base_speed(10) == 7
    assert speedup(1) == pytest.approx(0.25)
    assert speedup(10) == pytest.approx(0.7)


def test_paddles_are_clamped_to_the_field():
    sim = PongSimulation(5, random.Random(1))
    sim.set_paddle(LEFT, -50)
    sim.set_paddle(RIGHT, 9999)
    assert sim.paddles == {LEFT: 0.0, RIGHT: FIELD_HEIGHT - PADDLE_HEIGHT}


def test_missed_ball_scores_and_reserves_after_delay():
    sim = PongSimulation(10, random.Random(3))
    scored = None
    while scored is None:
        scored = sim.step(right=0 if sim.ball['y'] > 300 else 500)
    assert scored == LEFT
    assert sim.scores == {LEFT: 1, RIGHT: 0}
    assert (sim.ball['dx'], sim.ball['dy']) == (0.0, 0.0)

    for _ in range(SERVE_DELAY_FRAMES - 1):
        sim.step()
    assert sim.ball['dx'] == 0.0
    sim.step()
    assert sim.ball['x'] == 400
    assert sim.ball['dx'] > 0


def test_first_to_winning_score_ends_the_game():
    sim = PongSimulation(10, random.Random(5))
    while not sim.finished:
        sim.step(right=0 if sim.ball['y'] > 300 else 500)
    assert sim.winner == LEFT
    assert sim.scores[LEFT] == WINNING_SCORE
    frames = sim.frames
    assert sim.step() is None
    assert sim.frames == frames


def test_ai_paddle_returns_the_ball():
    sim = PongSimulation(1, random.Random(11))
    hits = 0
    for _ in range(400):
        before = sim.ball['dx']
        sim.step(left=0)
        if before > 0 and sim.ball['dx'] < 0:
            hits += 1
            break
    assert hits == 1
    assert sim.scores == {LEFT: 0, RIGHT: 0}


def test_adopt_ball_takes_relayed_snapshot():
    sim = PongSimulation(5, random.Random(2))
    sim.adopt_ball({'x': 100, 'y': 200, 'dx': -3, 'dy': 1, 'speed': 4.5})
    assert sim.ball == {'x': 100.0, 'y': 200.0, 'dx': -3.0, 'dy': 1.0, 'speed': 4.5}
    sim.adopt_ball({'x': 1})
    assert sim.ball['x'] == 100.0


def test_loop_does_not_advance_while_suspended():
    sim = PongSimulation(5, random.Random(4))
    loop = SimulationLoop(sim)
    assert loop.suspended
    ball = dict(sim.ball)
    assert loop.tick() is None
    assert sim.frames == 0
    assert sim.ball == ball

    loop.resume()
    loop.tick()
    assert sim.frames == 1

    loop.suspend()
    loop.tick()
    assert sim.frames == 1
