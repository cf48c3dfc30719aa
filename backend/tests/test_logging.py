"""Tests for request log context."""
from pricelab.middleware.logging import path_context


def test_experiment_paths_bind_experiment_id():
    assert path_context("/learning/experiment/exp_1_abc/status") == {"experiment_id": "exp_1_abc"}
    assert path_context("/learning/experiment/exp_1_abc/start") == {"experiment_id": "exp_1_abc"}


def test_create_and_list_bind_nothing():
    assert path_context("/learning/experiment/create") == {}
    assert path_context("/learning/experiments") == {}
    assert path_context("/learning/rl/train") == {}


def test_training_job_paths_bind_job_id():
    assert path_context("/learning/rl/train/job-1") == {"job_id": "job-1"}
    assert path_context("/learning/rl/train/job-1/cancel") == {"job_id": "job-1"}


def test_listing_paths_bind_listing_id():
    assert path_context("/learning/listings/l1/snapshot") == {"listing_id": "l1"}
