import numpy as np

from weights import utilization


def clamp_utilization(value, max_fraction):
    return min(max(value, 0.0), max_fraction)


def create_dynamic_utilization_model(
    initial=0.0, update_function=None, max_fraction=utilization["max"]
):
    """
    Create a utilization model whose value evolves with simulated time.

    Parameters:
    - initial: Fraction returned on the first evaluation.
    - update_function: Callable f(elapsed_seconds, current_fraction) returning
      the new fraction. When None the model stays at its initial value.
    - max_fraction: Upper bound applied to every returned value.
    """
    if not 0.0 <= max_fraction <= 1.0:
        raise ValueError(f"Max utilization {max_fraction} must be between 0 and 1.")
    if initial < 0.0:
        raise ValueError(f"Initial utilization {initial} cannot be negative.")

    return {
        "type": "dynamic",
        "initial": initial,
        "value": clamp_utilization(initial, max_fraction),
        "max": max_fraction,
        "update": update_function,
        "last_time": None,
    }


def create_full_utilization_model(max_fraction=utilization["max"]):
    return {
        "type": "full",
        "value": max_fraction,
        "max": max_fraction,
        "last_time": None,
    }


def create_trace_utilization_model(times, values, max_fraction=utilization["max"]):
    """
    Create a model that replays a recorded utilization trace.

    `times` are seconds elapsed since the first evaluation; between samples
    the value is linearly interpolated, past the last sample it holds.
    """
    if len(times) != len(values) or not times:
        raise ValueError("Trace times and values must be non-empty and of equal length.")
    if any(t2 < t1 for t1, t2 in zip(times, times[1:])):
        raise ValueError("Trace times must be sorted in ascending order.")

    return {
        "type": "trace",
        "times": [float(t) for t in times],
        "values": [float(v) for v in values],
        "value": clamp_utilization(float(values[0]), max_fraction),
        "max": max_fraction,
        "start_time": None,
        "last_time": None,
    }


def linear_increment(rate_per_second):
    """Update function increasing utilization by `rate_per_second` per second."""

    def increment(elapsed, current):
        return current + elapsed * rate_per_second

    return increment


def evaluate_utilization(model, time):
    if model["last_time"] is not None:
        if time < model["last_time"]:
            raise ValueError(
                f"Utilization model evaluated at {time}, before its last evaluation at {model['last_time']}."
            )
        if time == model["last_time"]:
            return model["value"]

    if model["type"] == "full":
        model["value"] = model["max"]

    elif model["type"] == "trace":
        if model["start_time"] is None:
            model["start_time"] = time
        value = np.interp(time - model["start_time"], model["times"], model["values"])
        model["value"] = clamp_utilization(float(value), model["max"])

    elif model["type"] == "dynamic":
        # First evaluation keeps the initial fraction
        if model["last_time"] is not None and model["update"] is not None:
            elapsed = time - model["last_time"]
            model["value"] = clamp_utilization(
                model["update"](elapsed, model["value"]), model["max"]
            )

    else:
        raise ValueError(f"Unknown utilization model type: {model['type']}")

    model["last_time"] = time
    return model["value"]


def peek_utilization(model):
    # Current value without advancing the model or fixing its start time
    return model["value"]
