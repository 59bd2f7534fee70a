import csv

from filter import get_migration_state
from log import (
    create_migration_log_file,
    log_event,
    log_host_allocation,
    log_migration,
    log_vm_allocation,
)


def test_log_event_format_and_switch(capsys):
    log_event(1.5, "VM 0 created")
    log_event(2.0, "hidden", print_to_console=False)
    assert capsys.readouterr().out == "# 1.50: VM 0 created\n"


def test_allocation_lines_mention_migration_overhead(make_pm, make_vm, capsys):
    pm = make_pm(0)
    vm = make_vm(0)
    pm["allocation"] = {0: 1440.0}
    pm["s"]["allocated_mips"] = 1440.0
    vm["migration"].update({"from_pm": 0, "to_pm": 1})

    assert get_migration_state(vm, 0) == "out"
    assert get_migration_state(vm, 1) == "in"
    assert get_migration_state(vm, 2) == "none"

    log_vm_allocation(1.0, vm, pm)
    log_host_allocation(1.0, pm)
    out = capsys.readouterr().out.splitlines()

    assert out[0] == (
        "# 1.00: VM 0 in PM 0: total allocated 1440 MIPS (divided by 2 PEs)"
        " - reduction due to migration overhead"
    )
    assert out[1] == "# 1.00: PM 0 allocated 1440.00 MIPS from 4000.00 total capacity"


def test_migration_log_rows(make_vm, tmp_path):
    migration_log_file = create_migration_log_file(str(tmp_path))
    log_migration(migration_log_file, 1.0, "start", make_vm(3), 0, 1, 0.25)
    log_migration(None, 2.0, "finish", make_vm(3), 0, 1, 0.25)

    with open(migration_log_file, newline="") as f:
        rows = list(csv.reader(f))
    assert rows == [
        ["Time", "Event", "VM ID", "From PM", "To PM", "Duration"],
        ["1.0", "start", "3", "0", "1", "0.25"],
    ]
