"""Tests for the agent interface, episode runner and command line."""

from __future__ import annotations

import pytest

from motorways import EnvConfig, MotorwaysEnv, TerminationReason
from rlagent import EpisodeResult, RandomAgent, build_parser, main, run_episode, train


class TestRandomAgent:
    def test_actions_in_range(self) -> None:
        agent = RandomAgent(seed=3, grid_width=7, grid_height=4)
        for _ in range(200):
            t, x, y = agent.get_action([])
            assert 0 <= t <= 6
            assert 0 <= x < 7
            assert 0 <= y < 4

    def test_seeded_agents_agree(self) -> None:
        a, b = RandomAgent(seed=9), RandomAgent(seed=9)
        assert [a.get_action([]) for _ in range(20)] == [b.get_action([]) for _ in range(20)]

    def test_save_and_load(self, tmp_path) -> None:
        path = str(tmp_path / "agent.json")
        agent = RandomAgent(seed=12, grid_width=8, grid_height=6)
        agent.save_model(path)
        expected = [agent.get_action([]) for _ in range(5)]

        loaded = RandomAgent()
        loaded.load_model(path)
        assert (loaded.seed, loaded.grid_width, loaded.grid_height) == (12, 8, 6)
        assert [loaded.get_action([]) for _ in range(5)] == expected


class RecordingAgent(RandomAgent):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.rewards = []
        self.dones = []

    def update(self, observation, action, reward, next_observation, done):
        self.rewards.append(reward)
        self.dones.append(done)


class TestRunEpisode:
    def test_runs_to_step_budget(self) -> None:
        env = MotorwaysEnv(seed=5, config=EnvConfig(max_steps=30))
        agent = RecordingAgent(seed=5)
        result = run_episode(env, agent)
        assert isinstance(result, EpisodeResult)
        assert result.steps <= 30
        assert result.termination_reason is not None
        assert result.total_reward == pytest.approx(result.score)
        assert agent.dones[-1] is True
        assert not any(agent.dones[:-1])
        assert all(r >= 0 for r in agent.rewards)

    def test_on_step_callback(self) -> None:
        env = MotorwaysEnv(seed=5, config=EnvConfig(max_steps=10))
        seen = []
        result = run_episode(env, RandomAgent(seed=1), on_step=lambda e: seen.append(e.current_step))
        assert result.termination_reason == TerminationReason.STEP_BUDGET
        assert seen[-1] == 10

    def test_train_reports(self, capsys) -> None:
        scores = train(3, seed=1, config=EnvConfig(max_steps=15), report_every=2)
        assert len(scores) == 3
        out = capsys.readouterr().out
        assert "Episode 0 - Score:" in out
        assert "Episode 2 - Score:" in out
        assert "Episode 1 - Score:" not in out

    def test_train_saves_frames(self, tmp_path) -> None:
        train(1, seed=1, config=EnvConfig(max_steps=5), frames_dir=str(tmp_path))
        assert (tmp_path / "episode_0000.png").exists()


class TestCli:
    def test_train_command(self, capsys) -> None:
        assert main(["train", "2", "--seed", "1", "--max-steps", "20"]) == 0
        out = capsys.readouterr().out
        assert "Training completed!" in out
        assert "Average score:" in out

    def test_rejects_zero_episodes(self) -> None:
        assert main(["train", "0"]) == 1

    def test_mode_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_defaults(self) -> None:
        args = build_parser().parse_args(["train"])
        assert args.episodes == 100
        assert args.max_steps is None
