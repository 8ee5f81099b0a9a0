"""Pipeline entrypoint: run smoke test, score aggregation, and manager enrichment in sequence."""

from __future__ import annotations

import argparse
from pathlib import Path
import subprocess
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run full fund quality refresh sequence.")
    parser.add_argument("--top", type=int, default=5, help="Top funds listed after aggregation.")
    parser.add_argument("--skip-smoke-test", action="store_true", help="Skip DB smoke test step.")
    parser.add_argument("--skip-enrichment", action="store_true", help="Skip fund manager enrichment step.")
    return parser.parse_args()


def _run_step(step_name: str, command: list[str]) -> None:
    print(f"[RUN] {step_name}: {' '.join(command)}", flush=True)
    subprocess.run(command, cwd=REPO_ROOT, check=True)


def main() -> int:
    args = _parse_args()
    python_bin = sys.executable

    if not args.skip_smoke_test:
        _run_step("db_smoke_test", [python_bin, "pipelines/run_db_smoke_test.py"])

    _run_step(
        "compute_fund_scores",
        [python_bin, "pipelines/run_compute_fund_scores.py", "--top", str(max(0, args.top))],
    )
    if not args.skip_enrichment:
        _run_step("enrich_fund_managers", [python_bin, "pipelines/run_enrich_fund_managers.py"])

    print("run_refresh_all completed", f"enrichment={'skipped' if args.skip_enrichment else 'run'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
