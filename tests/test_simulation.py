import pandas as pd
import pytest

from check import ConfigurationError
from events import PastEventError, TICK
from listeners import (
    ON_CLOCK_TICK,
    ON_VM_CREATED,
    ON_VM_CREATION_FAILED,
    ON_VM_DESTROYED,
    ON_VM_UPDATE,
    ON_VMS_CREATED,
)


@pytest.mark.parametrize("scheduling_interval", [1.0, 0.0])
def test_vm_finishes_when_its_workload_is_done(
    make_simulation, make_pm, make_vm, scheduling_interval
):
    sim = make_simulation([make_pm(0)], scheduling_interval=scheduling_interval)
    vm = make_vm(0, cpu=1.0, length=4000)
    sim.submit_vm(vm)

    end_time = sim.run()

    assert end_time == pytest.approx(2.0)
    assert vm["destroyed_time"] == pytest.approx(2.0)
    assert vm["workload"]["executed"] == pytest.approx(4000)
    assert sim.get_finished_vms() == (vm,)
    assert sim.active_vms == {}
    assert len(sim.queue) == 0
    assert sim.pms[0]["vms"] == []
    assert sim.pms[0]["resources"]["ram"]["allocated"] == 0


def test_time_limit_stops_the_run(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0)])
    sim.submit_vm(make_vm(0, cpu=0.5))
    ticks = []
    sim.add_listener(ON_CLOCK_TICK, lambda info: ticks.append(info.time))

    assert sim.run(until=5.5) == 5.0
    assert ticks == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert sim.queue.peek_time() == 6.0


def test_events_cannot_be_scheduled_in_the_past(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0)])
    sim.submit_vm(make_vm(0))
    sim.run(until=3.0)
    with pytest.raises(PastEventError):
        sim.queue.schedule(TICK, 2.0)
    with pytest.raises(PastEventError):
        sim.destroy_vm(0, delay=-1.0)


def test_listeners_receive_read_only_snapshots(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0)])
    created = []
    sim.add_listener(ON_VM_CREATED, created.append)
    sim.submit_vm(make_vm(0))
    sim.run(until=0.0)

    info = created[0]
    assert info.time == 0.0
    assert info.vm["host"] == 0
    assert info.target_pm["id"] == 0
    assert info.source_pm is None
    with pytest.raises(TypeError):
        info.vm["host"] = 5

    sim.vms[0]["s"]["cpu"] = 0.0
    assert info.vm["s"]["cpu"] == 0.8


def test_listener_can_remove_itself(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0)])
    calls = []

    def once(info):
        calls.append(info.time)
        sim.remove_listener(ON_CLOCK_TICK, once)

    def always(info):
        calls.append(("always", info.time))

    sim.add_listener(ON_CLOCK_TICK, once)
    sim.add_listener(ON_CLOCK_TICK, always)
    sim.submit_vm(make_vm(0))
    sim.run(until=2.0)

    assert calls == [1.0, ("always", 1.0), ("always", 2.0)]
    with pytest.raises(ValueError):
        sim.add_listener("power_off", once)


def test_grace_window_threshold_is_tightened_after_creation(
    make_simulation, make_pm, make_vm
):
    sim = make_simulation([make_pm(0), make_pm(1)], over=0.9)
    tightened = []

    def on_vms_created(info):
        sim.set_over_utilization_threshold(0.7)
        tightened.append(info.time)
        sim.remove_listener(ON_VMS_CREATED, on_vms_created)

    sim.add_listener(ON_VMS_CREATED, on_vms_created)
    sim.submit_vm_list([make_vm(0, cpu=0.8), make_vm(1, cpu=0.8)])
    sim.run(until=1.0)

    # Both VMs fit on PM 0 under the inflated threshold
    assert sim.vms[0]["created_time"] == 0.0
    assert sim.vms[1]["migration"]["from_pm"] == -1
    assert tightened == [0.0]
    assert sim.policy["over_threshold"] == 0.7
    assert sim.listeners[ON_VMS_CREATED] == []
    # The tightened threshold applies at the first tick
    assert sim.vms[0]["migration"] == {
        "from_pm": 0,
        "to_pm": 1,
        "start_time": 1.0,
        "total_time": 0.25,
    }


def test_vm_creation_is_retried_then_dropped(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0, pes=1)], retry_delay=10, vm_creation_retries=2)
    failures = []
    sim.add_listener(ON_VM_CREATION_FAILED, lambda info: failures.append(info.time))
    vm = make_vm(0, pes=2)
    sim.submit_vm(vm)

    sim.run()

    assert failures == [0.0, 10.0, 20.0]
    assert vm["creation_attempts"] == 3
    assert sim.failed_vms == [vm]
    assert sim.pending_vms == {}
    assert len(sim.queue) == 0


def test_retried_creation_starts_at_the_initial_utilization(
    make_simulation, make_pm, make_vm, place_vm
):
    sim = make_simulation([make_pm(0, ram=2000)], over=0.9, retry_delay=60)
    created = []
    sim.add_listener(ON_VM_CREATED, lambda info: created.append((info.time, info.vm["s"]["cpu"])))
    place_vm(sim, make_vm(0, cpu=0.5, ram=2000), 0)
    sim.destroy_vm(0, delay=30)
    vm = make_vm(1, cpu=0.5, ram=2000, increment=0.04)
    sim.submit_vm(vm)

    sim.run(until=60.0)

    # The failed attempt at 0 does not start the usage growth
    assert vm["creation_attempts"] == 2
    assert created == [(60.0, 0.5)]
    assert vm["utilization"]["cpu"]["last_time"] == 60.0

    sim.run(until=61.0)
    assert vm["s"]["cpu"] == pytest.approx(0.54)


def test_unbounded_retries_need_a_delay(make_simulation, make_pm):
    with pytest.raises(ConfigurationError):
        make_simulation([make_pm(0)], retry_delay=0)
    with pytest.raises(ConfigurationError):
        make_simulation([make_pm(0)], retry_delay=-1, vm_creation_retries=3)
    with pytest.raises(ConfigurationError):
        make_simulation([make_pm(0)], bandwidth_percent=0.0)


def test_update_listener_can_destroy_a_busy_vm(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0)], over=0.95)
    destroyed = []

    def destroy_when_busy(info):
        if info.vm["s"]["cpu"] > 0.85 and info.vm["destroyed_time"] is None:
            sim.destroy_vm(info.vm["id"])

    sim.add_listener(ON_VM_UPDATE, destroy_when_busy)
    sim.add_listener(ON_VM_DESTROYED, lambda info: destroyed.append((info.vm["id"], info.time)))
    sim.submit_vm(make_vm(0, cpu=0.5, increment=0.1))

    sim.run(until=20.0)

    # 0.5 + 0.1 per second passes 0.85 at the fourth tick
    assert destroyed == [(0, 4.0)]
    assert sim.active_vms == {}
    assert len(sim.queue) == 0


def test_destroying_a_pending_vm_cancels_its_creation(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0)])
    vm = make_vm(0)
    sim.submit_vm(vm, delay=5.0)
    sim.destroy_vm(0, delay=1.0)

    sim.run()

    assert vm["created_time"] is None
    assert vm["destroyed_time"] == 1.0
    assert sim.pms[0]["vms"] == []
    assert len(sim.queue) == 0


def test_host_history_is_exposed_read_only(make_simulation, make_pm, make_vm):
    sim = make_simulation([make_pm(0, history=True)])
    sim.submit_vm(make_vm(0, cpu=0.5))
    sim.run(until=2.0)

    history = sim.get_host_history(0)
    assert isinstance(history, tuple)
    assert [entry["time"] for entry in history] == [0.0, 1.0, 2.0]
    assert history[-1]["utilization"] == pytest.approx(0.25)
    with pytest.raises(TypeError):
        history[0]["utilization"] = 1.0

    df = sim.get_host_history_dataframe(0)
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ["time", "requested_mips", "allocated_mips", "utilization", "active"]
    assert len(df) == 3


def test_write_logs_creates_history_and_summary(make_simulation, make_pm, make_vm, tmp_path):
    sim = make_simulation([make_pm(0, history=True)], log_folder_path=str(tmp_path))
    sim.submit_vm(make_vm(0, cpu=1.0, length=2000))
    sim.run()

    lines = sim.write_logs()

    assert lines[0] == "Simulation finished at time 1.00"
    assert (tmp_path / "migrations.csv").exists()
    assert (tmp_path / "host_0_history.csv").exists()
    assert (tmp_path / "final_summary.log").read_text().startswith("Simulation finished")
    assert list(pd.read_csv(tmp_path / "host_0_history.csv")["time"]) == [0.0, 1.0]
