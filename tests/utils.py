"""Test utilities."""

import logging
import subprocess
import tempfile
from pathlib import Path

import polars as pl
from polars.testing import assert_frame_equal

logger = logging.getLogger(__name__)


def run_command(script: str, hydra_kwargs: dict[str, str], test_name: str, expected_returncode: int = 0):
    command_parts = [script] + [f"{k}={v}" for k, v in hydra_kwargs.items()]
    cmd = " ".join(command_parts)
    logger.info(f"Running {test_name}: {cmd}")
    command_out = subprocess.run(cmd, shell=True, capture_output=True)
    stderr = command_out.stderr.decode()
    stdout = command_out.stdout.decode()
    if command_out.returncode != expected_returncode:
        raise AssertionError(
            f"{test_name} returned {command_out.returncode} (expected {expected_returncode})!\n"
            f"stdout:\n{stdout}\nstderr:\n{stderr}"
        )
    return stderr, stdout


def assert_df_equal(want: pl.DataFrame, got: pl.DataFrame, msg: str | None = None, **kwargs):
    try:
        assert_frame_equal(want, got, **kwargs)
    except AssertionError as e:
        pl.Config.set_tbl_rows(-1)
        print(f"DFs are not equal: {msg}\nWant:")
        print(want)
        print("Got:")
        print(got)
        raise AssertionError(f"{msg}\n{e}") from e


def cli_test(
    data_csv: str,
    task_configs: dict[str, str],
    want_outputs_by_task: dict[str, pl.DataFrame],
    **data_kwargs: str,
):
    with tempfile.TemporaryDirectory() as root_dir:
        root_dir = Path(root_dir)
        data_fp = root_dir / "sample_data" / "data.csv"
        data_fp.parent.mkdir(parents=True)
        data_fp.write_text(data_csv.strip() + "\n")

        output_dir = root_dir / "sample_output"
        output_dir.mkdir()

        for task, task_cfg in task_configs.items():
            (output_dir / f"{task}.yaml").write_text(task_cfg)

            run_kwargs = {
                "output_dir": str(output_dir.resolve()),
                "output_name": task,
                "hydra.verbose": True,
                "data.path": str(data_fp.resolve()),
                **{f"data.{k}": v for k, v in data_kwargs.items()},
            }

            stderr, stdout = run_command("epiframe-cli", run_kwargs, f"CLI should run for {task}")

            want_fp = output_dir / f"{task}.parquet"
            try:
                assert want_fp.is_file(), f"Expected {want_fp.name} to exist."
                got_df = pl.read_parquet(want_fp)
                assert_df_equal(want_outputs_by_task[task], got_df, f"Data mismatch for task '{task}'")
            except AssertionError as e:
                logger.error(f"{stderr}\n{stdout}")
                raise AssertionError(f"Error running task '{task}': {e}") from e
