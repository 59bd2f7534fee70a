import os

import pandas as pd
from colorama import Style

from check import ConfigurationError

# Check if NO_COLOR environment variable is set
NO_COLOR = os.environ.get("NO_COLOR", "0") == "1"

HOST_COLUMNS = ["pes", "pe_mips", "ram", "bw", "storage"]
VM_COLUMNS = ["pes", "pe_mips", "ram", "bw", "storage"]


def to_python_value(value):
    if value is None:
        return None
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def load_table(file_path, required_columns):
    if not os.path.exists(file_path):
        raise ConfigurationError(f"File {file_path} not found.")

    df = pd.read_csv(file_path, skipinitialspace=True)
    missing_columns = [column for column in required_columns if column not in df.columns]
    if missing_columns:
        raise ConfigurationError(
            f"Error in loading {file_path}: missing columns {missing_columns}."
        )

    df = df.astype(object).where(pd.notnull(df), None)
    return [
        {key: to_python_value(value) for key, value in row.items()}
        for row in df.to_dict("records")
    ]


def load_host_table(file_path):
    return load_table(file_path, HOST_COLUMNS)


def load_vm_table(file_path):
    return load_table(file_path, VM_COLUMNS)


# Define a function to apply color only if colors are enabled
def color_text(text, color):
    if NO_COLOR:
        return text
    return f"{color}{text}{Style.RESET_ALL}"
