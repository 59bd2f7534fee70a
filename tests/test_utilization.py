import pytest

from utilization import (
    create_dynamic_utilization_model,
    create_full_utilization_model,
    create_trace_utilization_model,
    evaluate_utilization,
    linear_increment,
)


def test_first_evaluation_returns_initial_value():
    model = create_dynamic_utilization_model(0.8, linear_increment(0.1), 1.0)
    assert evaluate_utilization(model, 3.0) == 0.8


def test_update_uses_elapsed_time_and_is_clamped():
    model = create_dynamic_utilization_model(0.5, linear_increment(0.1), 0.9)
    evaluate_utilization(model, 0.0)
    assert evaluate_utilization(model, 2.0) == pytest.approx(0.7)
    assert evaluate_utilization(model, 5.0) == pytest.approx(0.9)


def test_initial_value_is_clamped_to_max():
    model = create_dynamic_utilization_model(1.0, None, 0.6)
    assert evaluate_utilization(model, 0.0) == 0.6


def test_same_time_evaluation_is_cached():
    calls = []

    def update(elapsed, current):
        calls.append(elapsed)
        return current + 0.1

    model = create_dynamic_utilization_model(0.1, update, 1.0)
    evaluate_utilization(model, 0.0)
    first = evaluate_utilization(model, 1.0)
    second = evaluate_utilization(model, 1.0)

    assert first == second
    assert calls == [1.0]


def test_evaluation_sequence_is_deterministic():
    times = [0.0, 0.5, 1.0, 4.0, 10.0]

    def run():
        model = create_dynamic_utilization_model(0.2, linear_increment(0.04), 1.0)
        return [evaluate_utilization(model, t) for t in times]

    assert run() == run()


def test_evaluating_before_last_time_fails():
    model = create_dynamic_utilization_model(0.2, linear_increment(0.1), 1.0)
    evaluate_utilization(model, 5.0)
    with pytest.raises(ValueError):
        evaluate_utilization(model, 4.0)


def test_full_model_always_returns_max():
    model = create_full_utilization_model(0.75)
    assert evaluate_utilization(model, 0.0) == 0.75
    assert evaluate_utilization(model, 100.0) == 0.75


def test_trace_model_interpolates_from_first_evaluation():
    model = create_trace_utilization_model([0, 10], [0.2, 0.6])
    assert evaluate_utilization(model, 5.0) == pytest.approx(0.2)
    assert evaluate_utilization(model, 10.0) == pytest.approx(0.4)
    assert evaluate_utilization(model, 30.0) == pytest.approx(0.6)


def test_invalid_models_are_rejected():
    with pytest.raises(ValueError):
        create_dynamic_utilization_model(0.5, None, 1.5)
    with pytest.raises(ValueError):
        create_dynamic_utilization_model(-0.1)
    with pytest.raises(ValueError):
        create_trace_utilization_model([0, 1], [0.5])
    with pytest.raises(ValueError):
        create_trace_utilization_model([2, 1], [0.5, 0.6])
