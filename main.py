# main.py - batch processing from the command line
"""
Runs local OMR sheet files through the processing pipeline without the
dashboard, saves the results next to the ones already stored, and prints
a summary.

    python main.py scans/*.png --seed 7
"""

import argparse
import os
import sys

import numpy as np

import config
from analytics import compute_analytics
from engine import FileQueue, PipelineSimulator
from models import SECTION_MAX
from store import ResultStore


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Grade OMR sheet files (simulated pipeline)")
    parser.add_argument("files", nargs="+", help="JPG, PNG, PDF or ZIP files")
    parser.add_argument("--seed", type=int, default=None, help="seed for reproducible results")
    parser.add_argument("--realtime", action="store_true", help="keep the pipeline's stage delays")
    parser.add_argument("--no-save", action="store_true", help="do not write results to the database")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config.setup_logging()

    print("=" * 60)
    print(f"🎯 {config.APP_TITLE} BATCH GRADING")
    print("=" * 60)

    queue = FileQueue()
    for path in args.files:
        if not os.path.exists(path):
            print(f"❌ File not found: {path}")
            continue
        with open(path, "rb") as f:
            data = f.read()
        if queue.add(os.path.basename(path), data=data) is None:
            print(f"⚠️  Skipped (unsupported type or too large): {path}")

    if len(queue) == 0:
        print("❌ Nothing to process.")
        return 1

    store = ResultStore.load() if not args.no_save else ResultStore()
    rng = np.random.default_rng(args.seed)
    simulator = PipelineSimulator(rng=rng) if args.realtime else PipelineSimulator(rng=rng, sleep=lambda _s: None)

    print(f"\n🔄 Processing {len(queue)} file(s)")
    print("-" * 30)
    files = queue.take()
    results = simulator.process(files)
    store.add_results(results)

    failed = len(files) - len(results)
    print(f"   Graded: {len(results)}   Failed: {failed}")

    print("\n📊 RESULTS")
    print("=" * 60)
    for r in results:
        flag = "⚠️ " if r.needs_review else "✅"
        print(f"   {flag} {r.student_id:<10} set {r.exam_set}  {r.total_score:>3}/100  "
              f"confidence {r.confidence * 100:.1f}%  [{r.status}]")

    if results:
        summary = compute_analytics(results)
        print(f"\n📈 Summary:")
        print(f"   Average score: {summary['avg_score']:.1f}")
        print(f"   Pass rate:     {summary['pass_rate']:.1f}%")
        for sec in summary["section_avgs"]:
            print(f"   {sec['name']:<15} {sec['avg_score']:.1f}/{SECTION_MAX}")

    if not args.no_save:
        print(f"\n💾 {len(store)} result(s) stored, {store.total_processed} processed in total")
    return 0


if __name__ == "__main__":
    sys.exit(main())
