from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
import argparse
import json
import random
import sys

from motorways import ActionType, EnvConfig, MotorwaysEnv, TerminationReason


class Agent(ABC):
    """Policy interface for anything that drives MotorwaysEnv."""

    @abstractmethod
    def get_action(self, observation: Sequence[float]) -> List[int]:
        ...

    def update(self, observation, action, reward: float, next_observation, done: bool):
        pass

    @abstractmethod
    def save_model(self, filepath: str):
        ...

    @abstractmethod
    def load_model(self, filepath: str):
        ...


class RandomAgent(Agent):
    def __init__(self, seed: Optional[int] = None, grid_width: int = 20, grid_height: int = 20):
        self.seed = seed
        self.grid_width = grid_width
        self.grid_height = grid_height
        self.rng = random.Random(seed)

    def get_action(self, observation: Sequence[float]) -> List[int]:
        return [self.rng.randint(0, int(ActionType.PASS)),
                self.rng.randrange(self.grid_width),
                self.rng.randrange(self.grid_height)]

    def save_model(self, filepath: str):
        with open(filepath, "w") as f:
            json.dump({"agent": "random", "seed": self.seed,
                       "grid_width": self.grid_width, "grid_height": self.grid_height}, f)

    def load_model(self, filepath: str):
        with open(filepath) as f:
            params = json.load(f)
        self.seed = params.get("seed")
        self.grid_width = params.get("grid_width", self.grid_width)
        self.grid_height = params.get("grid_height", self.grid_height)
        self.rng = random.Random(self.seed)


@dataclass
class EpisodeResult:
    score: int
    steps: int
    congestion_penalty: int
    total_reward: float
    termination_reason: Optional[TerminationReason]


def run_episode(env: MotorwaysEnv, agent: Agent,
                on_step: Optional[Callable[[MotorwaysEnv], None]] = None) -> EpisodeResult:
    """Play one episode. The reward handed to the agent is the score gained that step."""
    observation = env.reset()
    total_reward = 0.0
    while not env.is_done():
        action = agent.get_action(observation)
        score_before = env.score
        next_observation = env.step(action)
        reward = float(env.score - score_before)
        agent.update(observation, action, reward, next_observation, env.is_done())
        total_reward += reward
        observation = next_observation
        if on_step is not None:
            on_step(env)
    return EpisodeResult(env.score, env.current_step, env.congestion_penalty,
                         total_reward, env.termination_reason)


def train(episodes: int, seed: Optional[int] = None, config: Optional[EnvConfig] = None,
          report_every: int = 10, frames_dir: Optional[str] = None) -> List[int]:
    env = MotorwaysEnv(seed=seed, config=config)
    agent = RandomAgent(seed=None if seed is None else seed + 1,
                        grid_width=env.config.grid_width, grid_height=env.config.grid_height)
    scores = []
    for episode in range(episodes):
        result = run_episode(env, agent)
        scores.append(result.score)
        if episode % report_every == 0:
            reason = result.termination_reason.value if result.termination_reason else "-"
            print(f"Episode {episode} - Score: {result.score} steps: {result.steps} ({reason})")
            if frames_dir:
                from render import save_frame
                save_frame(env, f"{frames_dir}/episode_{episode:04d}.png")
    return scores


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minimotorways", description="Mini Motorways traffic simulation")
    sub = parser.add_subparsers(dest="mode", required=True)

    demo = sub.add_parser("demo", help="interactive window driven by a random agent")
    demo.add_argument("--seed", type=int, default=None)

    tr = sub.add_parser("train", help="run the random baseline for a number of episodes")
    tr.add_argument("episodes", type=int, nargs="?", default=100)
    tr.add_argument("--seed", type=int, default=None)
    tr.add_argument("--max-steps", type=int, default=None)
    tr.add_argument("--report-every", type=int, default=10)
    tr.add_argument("--frames-dir", default=None, help="save a PNG of each reported episode's final state")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    print("Mini Motorways RL")
    print("=================")

    if args.mode == "demo":
        from gui import App
        print("Running interactive demo... Close window to exit.")
        app = App(seed=args.seed)
        app.running_sim = True
        app.run()
        print(f"Demo finished. Final score: {app.env.score}")
        return 0

    if args.episodes < 1:
        print("episodes must be >= 1", file=sys.stderr)
        return 1
    config = EnvConfig() if args.max_steps is None else EnvConfig(max_steps=args.max_steps)
    print(f"Training random agent for {args.episodes} episodes...")
    scores = train(args.episodes, seed=args.seed, config=config,
                   report_every=max(1, args.report_every), frames_dir=args.frames_dir)
    print("Training completed!")
    print(f"Average score: {sum(scores) / len(scores):.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
