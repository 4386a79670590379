"""
Tests for Training Module.

Tests optimizers, gradient aggregation, the training logger and the
trainer's configuration and lifecycle.
"""

import json
import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
import torch
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import load_config, validate_config
from embedprop.data import CSRGraph, FeatureStore
from embedprop.model import EmbeddingModel, EmbeddingStore, PoolingStrategy
from embedprop.training import (
    EmbeddingPropagationTrainer, TrainerState, FeatureOptimizer, MomentumOptimizer,
    AdamOptimizer, create_optimizer, aggregate_gradients, iter_batches, TrainingLogger
)


def make_table(rows):
    return EmbeddingStore.from_tensor(torch.tensor(rows, dtype=torch.float32))


class TestMomentumOptimizer:
    """Tests for SGD with momentum."""

    def test_zero_momentum_is_gradient_descent(self):
        table = make_table([[1.0, 2.0], [3.0, 4.0]])
        opt = MomentumOptimizer(0.0, dims=2, length=2)

        opt.update(table, {0: torch.tensor([1.0, -1.0])}, alpha=0.1, t=0)
        opt.update(table, {0: torch.tensor([2.0, 0.0])}, alpha=0.1, t=1)

        assert torch.allclose(table.get_embedding(0), torch.tensor([0.7, 2.1]))
        assert torch.equal(table.get_embedding(1), torch.tensor([3.0, 4.0]))

    def test_velocity_accumulates(self):
        table = make_table([[0.0]])
        opt = MomentumOptimizer(0.5, dims=1, length=1)

        opt.update(table, {0: torch.tensor([1.0])}, alpha=1.0, t=0)
        opt.update(table, {0: torch.tensor([1.0])}, alpha=1.0, t=1)

        # v1 = 1, v2 = 0.5 + 1
        assert table.get_embedding(0).item() == pytest.approx(-2.5)
        assert opt.mom.get_embedding(0).item() == pytest.approx(1.5)

    def test_invalid_gamma(self):
        with pytest.raises(ValueError):
            MomentumOptimizer(1.0, dims=2, length=2)


class TestAdamOptimizer:
    """Tests for Adam."""

    def test_first_step_moves_by_alpha(self):
        """After bias correction the first step is alpha * sign(g)."""
        table = make_table([[0.0, 0.0]])
        opt = AdamOptimizer(0.9, 0.999, dims=2, length=1)

        opt.update(table, {0: torch.tensor([0.3, -4.0])}, alpha=0.01, t=0)

        assert torch.allclose(table.get_embedding(0), torch.tensor([-0.01, 0.01]), atol=1e-6)

    def test_moments(self):
        table = make_table([[0.0]])
        opt = AdamOptimizer(0.9, 0.999, dims=1, length=1)

        opt.update(table, {0: torch.tensor([2.0])}, alpha=0.01, t=0)

        assert opt.mom.get_embedding(0).item() == pytest.approx(0.2)
        assert opt.var.get_embedding(0).item() == pytest.approx(0.004)

    def test_invalid_betas(self):
        with pytest.raises(ValueError):
            AdamOptimizer(1.0, 0.999, dims=2, length=2)
        with pytest.raises(ValueError):
            AdamOptimizer(0.9, -0.1, dims=2, length=2)


class TestOptimizerCommon:
    """Behaviour shared by both optimizers."""

    @pytest.mark.parametrize("name", ["momentum", "adam"])
    def test_non_finite_gradient_skipped(self, name):
        table = make_table([[1.0, 1.0], [2.0, 2.0]])
        opt = create_optimizer(name, dims=2, length=2)

        skipped = opt.update(
            table,
            {0: torch.tensor([float('nan'), 1.0]), 1: torch.tensor([1.0, 1.0])},
            alpha=0.1, t=0
        )

        assert skipped == 1
        assert torch.equal(table.get_embedding(0), torch.tensor([1.0, 1.0]))
        assert torch.equal(opt.mom.get_embedding(0), torch.zeros(2))
        assert not torch.equal(table.get_embedding(1), torch.tensor([2.0, 2.0]))

    @pytest.mark.parametrize("name", ["momentum", "adam"])
    def test_parallel_matches_sequential(self, name):
        rng = np.random.default_rng(0)
        grads = {i: torch.from_numpy(rng.normal(size=4).astype(np.float32)) for i in range(20)}

        seq = EmbeddingStore(20, 4)
        seq.randomize(np.random.default_rng(1))
        par = EmbeddingStore.from_tensor(seq.data)

        seq_opt = create_optimizer(name, dims=4, length=20)
        par_opt = create_optimizer(name, dims=4, length=20)

        with ThreadPoolExecutor(max_workers=4) as executor:
            for t in range(3):
                seq_opt.update(seq, grads, alpha=0.05, t=t)
                par_opt.update(par, grads, alpha=0.05, t=t, executor=executor)

        assert torch.equal(seq.data, par.data)

    def test_create_optimizer(self):
        opt = create_optimizer('momentum', dims=3, length=5, momentum=0.5)
        assert isinstance(opt, MomentumOptimizer)
        assert opt.gamma == 0.5

        opt = create_optimizer('adam', dims=3, length=5, beta_1=0.8)
        assert isinstance(opt, AdamOptimizer)
        assert opt.beta_1 == 0.8
        assert len(opt.var) == 5

        with pytest.raises(ValueError):
            create_optimizer('sgd', dims=3, length=5)

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            FeatureOptimizer()


class TestAggregation:
    """Tests for gradient aggregation and batching."""

    def test_shared_features_summed(self):
        g1 = {0: torch.tensor([1.0, 2.0]), 1: torch.tensor([1.0, 1.0])}
        g2 = {0: torch.tensor([0.5, 0.5])}
        g3 = {2: torch.tensor([3.0, 3.0])}

        merged = aggregate_gradients([g1, g2, g3])

        assert set(merged) == {0, 1, 2}
        assert torch.equal(merged[0], torch.tensor([1.5, 2.5]))
        assert torch.equal(merged[2], torch.tensor([3.0, 3.0]))

    def test_inputs_not_mutated(self):
        g1 = {0: torch.tensor([1.0])}
        g2 = {0: torch.tensor([1.0])}
        aggregate_gradients([g1, g2])

        assert g1[0].item() == 1.0

    def test_empty(self):
        assert aggregate_gradients([]) == {}
        assert aggregate_gradients([{}, {}]) == {}

    def test_iter_batches(self):
        batches = list(iter_batches(list(range(10)), 4))
        assert batches == [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9]]


class TestTrainingLogger:
    """Tests for TrainingLogger."""

    def test_writes_json_files(self, tmp_path):
        logger = TrainingLogger(log_dir=str(tmp_path), verbose=False)
        for pass_idx, (loss, skipped) in enumerate([(0.9, 1), (0.5, 0), (0.7, 2)]):
            logger.start_pass(pass_idx)
            logger.log_pass(pass_idx, {'loss': loss, 'skipped_updates': skipped})

        summary = logger.save_final({'steps': 12})

        assert summary['total_passes'] == 3
        assert summary['first_loss'] == 0.9
        assert summary['final_loss'] == 0.7
        assert summary['best_loss'] == 0.5
        assert summary['best_pass'] == 1
        assert summary['total_skipped_updates'] == 3
        assert summary['steps'] == 12

        with open(tmp_path / 'pass_metrics.json') as f:
            records = json.load(f)
        assert [r['pass'] for r in records] == [0, 1, 2]
        assert all(r['seconds'] >= 0 for r in records)
        with open(tmp_path / 'training_summary.json') as f:
            assert json.load(f)['best_pass'] == 1

    def test_memory_only(self):
        logger = TrainingLogger(log_dir=None, verbose=False)
        logger.log_pass(0, {'loss': 1.0})
        summary = logger.save_final()

        assert [m['loss'] for m in logger.pass_metrics] == [1.0]
        assert summary['total_skipped_updates'] == 0

    def test_empty_run(self):
        summary = TrainingLogger(log_dir=None, verbose=False).save_final()

        assert summary['total_passes'] == 0
        assert 'final_loss' not in summary

    def test_console_output(self, capsys):
        logger = TrainingLogger(log_dir=None, log_every=2, verbose=True)
        logger.log_pass(0, {'loss': 0.25, 'pos_dist': 1.0, 'neg_dist': 2.0,
                            'skipped_updates': 0})
        logger.log_pass(1, {'loss': 0.125})
        logger.log_pass(2, {'loss': 0.1, 'skipped_updates': 4})

        out = capsys.readouterr().out
        assert "Pass    0 | loss: 0.2500 | d+: 1.0000 | d-: 2.0000 |" in out
        assert "Pass    1" not in out
        assert "skipped: 4" in out
        assert out.count("skipped") == 1


class TestTrainer:
    """Tests for EmbeddingPropagationTrainer configuration and lifecycle."""

    @pytest.fixture
    def small_data(self):
        graph = CSRGraph.complete(6)
        features = FeatureStore(6)
        features.fill_missing_nodes()
        return graph, features

    def make_trainer(self, **kwargs):
        params = dict(model=EmbeddingModel(), dims=3, passes=2, batch_size=2,
                      num_workers=2, verbose=False)
        params.update(kwargs)
        return EmbeddingPropagationTrainer(**params)

    @pytest.mark.parametrize("kwargs", [
        {'batch_size': 0},
        {'passes': 0},
        {'dims': 0},
        {'alpha': 0.0},
        {'num_workers': 0},
        {'gamma': -1.0},
    ])
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            self.make_trainer(**kwargs)

    def test_single_node_graph_rejected(self):
        graph = CSRGraph.from_edges([], num_nodes=1)
        features = FeatureStore(1)
        features.fill_missing_nodes()

        with pytest.raises(ValueError):
            self.make_trainer().learn(graph, features)

    def test_feature_store_size_mismatch(self, small_data):
        graph, _ = small_data
        features = FeatureStore(4)
        features.fill_missing_nodes()

        with pytest.raises(ValueError):
            self.make_trainer().learn(graph, features)

    def test_runs_once(self, small_data):
        graph, features = small_data
        trainer = self.make_trainer()
        assert trainer.state == TrainerState.IDLE

        trainer.learn(graph, features)
        assert trainer.state == TrainerState.DONE
        assert len(trainer.history) == 2
        # 6 nodes in batches of 2, twice
        assert trainer.step == 6

        with pytest.raises(RuntimeError):
            trainer.learn(graph, features)

    def test_output_shapes(self, small_data):
        graph, features = small_data
        node_emb, feat_emb = self.make_trainer().learn(graph, features)

        assert node_emb.data.shape == (6, 3)
        assert feat_emb.data.shape == (len(features), 3)
        assert torch.isfinite(node_emb.data).all()

    def test_singleton_node_embeddings_match_features(self, small_data):
        graph, features = small_data
        node_emb, feat_emb = self.make_trainer().learn(graph, features)

        for node in range(6):
            feat = features.get_features(node)[0]
            assert torch.equal(node_emb.get_embedding(node), feat_emb.get_embedding(feat))

    def test_isolated_node_has_zero_loss(self):
        graph = CSRGraph.from_edges([(0, 1), (1, 0)], num_nodes=3)
        features = FeatureStore(3)
        features.fill_missing_nodes()
        table = EmbeddingStore(len(features), 3)
        table.randomize(np.random.default_rng(0))

        result = self.make_trainer().run_pass(graph, 2, features, table, batch_idx=0)

        assert result.loss == 0.0
        assert result.grads == {}

    def test_run_pass_is_deterministic(self, small_data):
        graph, features = small_data
        table = EmbeddingStore(len(features), 3)
        table.randomize(np.random.default_rng(0))
        trainer = self.make_trainer(gamma=5.0)

        r1 = trainer.run_pass(graph, 3, features, table, batch_idx=7)
        r2 = trainer.run_pass(graph, 3, features, table, batch_idx=7)

        assert r1.loss == r2.loss
        assert r1.loss > 0
        assert set(r1.grads) == set(r2.grads)
        for feat in r1.grads:
            assert torch.equal(r1.grads[feat], r2.grads[feat])

    def test_negative_is_never_the_anchor(self):
        """
        On a two-node graph the only valid negative is the other node.

        That node is also the sole neighbor, so h(u) equals ~h(v) and the
        negative distance is exactly zero; the anchor would give d(~h(v), h(v)).
        """
        graph = CSRGraph.from_edges([(0, 1), (1, 0)], num_nodes=2)
        features = FeatureStore(2)
        features.fill_missing_nodes()
        table = EmbeddingStore(len(features), 3)
        table.randomize(np.random.default_rng(0))
        trainer = self.make_trainer()

        for batch_idx in range(50):
            for node in (0, 1):
                result = trainer.run_pass(graph, node, features, table, batch_idx=batch_idx)
                assert result.pos_dist > 0
                assert result.neg_dist == 0.0

    def test_training_with_isolated_nodes(self):
        graph = CSRGraph.from_edges([(0, 1), (1, 2), (2, 0)], num_nodes=5)
        features = FeatureStore(5)
        features.fill_missing_nodes()

        trainer = self.make_trainer(optimizer='momentum')
        node_emb, _ = trainer.learn(graph, features)

        assert torch.isfinite(node_emb.data).all()

    def test_attention_strategy(self, small_data):
        graph, features = small_data
        trainer = self.make_trainer(model=EmbeddingModel(PoolingStrategy.ATTENTION))
        node_emb, _ = trainer.learn(graph, features)

        assert torch.isfinite(node_emb.data).all()

    def test_from_config(self, tmp_path):
        config = {
            'model': {'dims': 8, 'strategy': 'attention', 'max_neighbor_nodes': 3},
            'training': {'passes': 4, 'batch_size': 16, 'learning_rate': 0.05,
                         'gamma': 0.2, 'seed': 7, 'num_workers': 2},
            'optimizer': {'name': 'momentum', 'momentum': 0.8},
            'paths': {'logs': str(tmp_path / 'logs')},
        }
        trainer = EmbeddingPropagationTrainer.from_config(config, verbose=False)

        assert trainer.dims == 8
        assert trainer.model.strategy == PoolingStrategy.ATTENTION
        assert trainer.model.max_neighbor_nodes == 3
        assert trainer.passes == 4
        assert trainer.alpha == 0.05
        assert trainer.gamma == 0.2
        assert trainer.optimizer_name == 'momentum'
        assert trainer.optimizer_config == {'momentum': 0.8}
        # Source dict is left intact
        assert config['optimizer']['name'] == 'momentum'

    def test_from_config_writes_logs(self, tmp_path, small_data):
        graph, features = small_data
        config = {
            'model': {'dims': 3},
            'training': {'passes': 2, 'batch_size': 3, 'num_workers': 1},
            'paths': {'logs': str(tmp_path)},
        }
        trainer = EmbeddingPropagationTrainer.from_config(config, verbose=False)
        trainer.learn(graph, features)

        with open(tmp_path / 'pass_metrics.json') as f:
            records = json.load(f)
        assert len(records) == 2
        assert all(math.isfinite(r['loss']) for r in records)


class TestConfig:
    """Tests for configuration loading and validation."""

    def test_default_config(self):
        config = load_config()

        for section in ['model', 'training', 'optimizer', 'paths']:
            assert section in config
        assert config['optimizer']['name'] in ('adam', 'momentum')

    def test_default_config_builds_trainer(self):
        config = load_config()
        config['paths']['logs'] = None

        trainer = EmbeddingPropagationTrainer.from_config(config, verbose=False)
        assert trainer.state == TrainerState.IDLE
        assert trainer.logger.log_dir is None

    @pytest.mark.parametrize("config", [
        {'model': {'dims': 0}},
        {'model': {'max_features': 0}},
        {'model': {'max_neighbor_nodes': 0}},
        {'model': {'strategy': 'median'}},
        {'training': {'batch_size': 0}},
        {'training': {'passes': -1}},
        {'training': {'learning_rate': 0.0}},
        {'optimizer': {'name': 'sgd'}},
    ])
    def test_invalid_values(self, config):
        with pytest.raises(ValueError):
            validate_config(config)

    def test_yaml_file(self, tmp_path):
        path = tmp_path / 'custom.yaml'
        path.write_text("model:\n  dims: 4\ntraining:\n  passes: 3\n")

        config = load_config(str(path))
        assert config['model']['dims'] == 4

        path.write_text("training:\n  batch_size: 0\n")
        with pytest.raises(ValueError):
            load_config(str(path))
