"""Headless Pong simulation.

Left paddle belongs to the host, right paddle to the challenger. One call to
``step`` advances one frame (the browser client runs at ~60 frames/s).
"""

import math
import random
from typing import Dict, Optional

FIELD_WIDTH = 800
FIELD_HEIGHT = 600
PADDLE_WIDTH = 10
PADDLE_HEIGHT = 100
PADDLE_SPEED = 5
BALL_SIZE = 10
WINNING_SCORE = 10
HITS_PER_SPEEDUP = 10
SERVE_DELAY_FRAMES = 60
# Dead zone for the AI paddle so it does not jitter around the ball
AI_TOLERANCE = 10

LEFT = 'left'
RIGHT = 'right'


def base_speed(difficulty: int) -> float:
    return 2 + difficulty * 0.5


def speedup(difficulty: int) -> float:
    return 0.2 + difficulty * 0.05


class PongSimulation:
    def __init__(self, difficulty: int, rng: Optional[random.Random] = None):
        self.difficulty = difficulty
        self.rng = rng or random.Random()
        centre = FIELD_HEIGHT / 2 - PADDLE_HEIGHT / 2
        self.paddles: Dict[str, float] = {LEFT: centre, RIGHT: centre}
        self.scores: Dict[str, int] = {LEFT: 0, RIGHT: 0}
        self.hits = 0
        self.winner: Optional[str] = None
        self.serve_countdown = 0
        self.frames = 0
        self.ball: Dict[str, float] = {}
        self.serve()

    @property
    def finished(self) -> bool:
        return self.winner is not None

    def serve(self) -> None:
        speed = base_speed(self.difficulty)
        angle = self.rng.uniform(-math.pi / 6, math.pi / 6)
        self.ball = {
            'x': FIELD_WIDTH / 2,
            'y': FIELD_HEIGHT / 2,
            'dx': math.cos(angle) * speed,
            'dy': math.sin(angle) * speed,
            'speed': speed,
        }

    def set_paddle(self, side: str, y: float) -> None:
        self.paddles[side] = max(0.0, min(FIELD_HEIGHT - PADDLE_HEIGHT, float(y)))

    def adopt_ball(self, ball: Dict[str, float]) -> None:
        """Take a relayed ball snapshot as the local ball state."""
        if self.finished or self.serve_countdown:
            return
        try:
            self.ball = {k: float(ball[k]) for k in ('x', 'y', 'dx', 'dy', 'speed')}
        except (KeyError, TypeError, ValueError):
            return

    def _track_ball(self, side: str) -> None:
        centre = self.paddles[side] + PADDLE_HEIGHT / 2
        if self.ball['y'] < centre - AI_TOLERANCE:
            self.set_paddle(side, self.paddles[side] - PADDLE_SPEED)
        elif self.ball['y'] > centre + AI_TOLERANCE:
            self.set_paddle(side, self.paddles[side] + PADDLE_SPEED)

    def step(self, left: Optional[float] = None, right: Optional[float] = None) -> Optional[str]:
        """Advance one frame.

        ``left``/``right`` are paddle positions supplied by a player or the
        relay; ``None`` lets the AI proxy drive that paddle. Returns the side
        that scored on this frame, if any.
        """
        if self.finished:
            return None
        self.frames += 1
        for side, target in ((LEFT, left), (RIGHT, right)):
            if target is None:
                self._track_ball(side)
            else:
                self.set_paddle(side, target)

        if self.serve_countdown:
            self.serve_countdown -= 1
            if not self.serve_countdown:
                self.serve()
            return None

        ball = self.ball
        ball['x'] += ball['dx']
        ball['y'] += ball['dy']

        if ball['y'] <= BALL_SIZE / 2 or ball['y'] >= FIELD_HEIGHT - BALL_SIZE / 2:
            ball['dy'] = -ball['dy']

        if ball['dx'] < 0 and ball['x'] - BALL_SIZE / 2 <= PADDLE_WIDTH \
                and self.paddles[LEFT] <= ball['y'] <= self.paddles[LEFT] + PADDLE_HEIGHT:
            self._bounce(LEFT)
        elif ball['dx'] > 0 and ball['x'] + BALL_SIZE / 2 >= FIELD_WIDTH - PADDLE_WIDTH \
                and self.paddles[RIGHT] <= ball['y'] <= self.paddles[RIGHT] + PADDLE_HEIGHT:
            self._bounce(RIGHT)

        if ball['x'] < -BALL_SIZE:
            return self._point(RIGHT)
        if ball['x'] > FIELD_WIDTH + BALL_SIZE:
            return self._point(LEFT)
        return None

    def _bounce(self, side: str) -> None:
        ball = self.ball
        ball['dx'] = -ball['dx']
        hit_pos = (ball['y'] - self.paddles[side]) / PADDLE_HEIGHT
        ball['dy'] = (hit_pos - 0.5) * ball['speed'] * 2
        self.hits += 1
        if self.hits >= HITS_PER_SPEEDUP:
            self.hits = 0
            ball['speed'] += speedup(self.difficulty)
            current = math.hypot(ball['dx'], ball['dy'])
            if current:
                ratio = ball['speed'] / current
                ball['dx'] *= ratio
                ball['dy'] *= ratio

    def _point(self, side: str) -> str:
        self.scores[side] += 1
        self.ball['dx'] = 0.0
        self.ball['dy'] = 0.0
        if self.scores[side] >= WINNING_SCORE:
            self.winner = side
        else:
            self.serve_countdown = SERVE_DELAY_FRAMES
        return side


class SimulationLoop:
    """Gate around a simulation: frames only advance while resumed."""

    def __init__(self, simulation: PongSimulation):
        self.simulation = simulation
        self.suspended = True

    def resume(self) -> None:
        self.suspended = False

    def suspend(self) -> None:
        self.suspended = True

    def tick(self, left: Optional[float] = None, right: Optional[float] = None) -> Optional[str]:
        if self.suspended:
            return None
        return self.simulation.step(left, right)
