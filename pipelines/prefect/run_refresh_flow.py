"""Prefect flow to orchestrate smoke test, score aggregation, and manager enrichment."""

from __future__ import annotations

import argparse
import os
from pathlib import Path
import subprocess
import sys
from typing import Sequence

from prefect import flow, get_run_logger, task

REPO_ROOT = Path(__file__).resolve().parents[2]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run fund quality refresh flow via Prefect.")
    parser.add_argument("--top", type=int, default=5, help="Top funds listed after aggregation.")
    parser.add_argument("--skip-smoke-test", action="store_true", help="Skip DB smoke test step.")
    parser.add_argument("--skip-enrichment", action="store_true", help="Skip fund manager enrichment step.")
    return parser.parse_args()


def _run_subprocess(command: Sequence[str]) -> tuple[int, str, str]:
    env = os.environ.copy()
    env.setdefault("PYTHONUNBUFFERED", "1")
    result = subprocess.run(
        command,
        cwd=REPO_ROOT,
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )
    return result.returncode, result.stdout, result.stderr


@task(name="run-shell-step", retries=2, retry_delay_seconds=30)
def run_shell_step(name: str, command: list[str]) -> None:
    logger = get_run_logger()
    logger.info("Running step=%s command=%s", name, " ".join(command))
    return_code, stdout, stderr = _run_subprocess(command)
    if stdout.strip():
        logger.info(stdout.strip())
    if stderr.strip():
        # structlog diagnostics go to stderr even on success.
        (logger.error if return_code != 0 else logger.info)(stderr.strip())
    if return_code != 0:
        raise RuntimeError(f"Step {name} failed with exit code {return_code}")


@flow(name="fund-quality-refresh-all", log_prints=True)
def refresh_all_flow(top: int = 5, run_smoke_test: bool = True, run_enrichment: bool = True) -> None:
    python_bin = sys.executable

    if run_smoke_test:
        run_shell_step("db_smoke_test", [python_bin, "pipelines/run_db_smoke_test.py"])

    run_shell_step(
        "compute_fund_scores",
        [python_bin, "pipelines/run_compute_fund_scores.py", "--top", str(top)],
    )

    if run_enrichment:
        run_shell_step("enrich_fund_managers", [python_bin, "pipelines/run_enrich_fund_managers.py"])


if __name__ == "__main__":
    args = _parse_args()
    refresh_all_flow(
        top=max(0, args.top),
        run_smoke_test=not args.skip_smoke_test,
        run_enrichment=not args.skip_enrichment,
    )
