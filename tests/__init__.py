"""
Test Suite for Embedding Propagation.

This package contains tests for all modules:
- test_data.py: Vocabulary, feature store and graph construction
- test_model.py: Embedding tables, pooling and margin loss
- test_training.py: Optimizers, aggregation, logger and trainer
- test_integration.py: End-to-end integration tests
"""
